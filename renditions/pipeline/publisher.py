import logging
import shutil
from pathlib import Path
from typing import List

from renditions.domain.models import ExportReport, JobReport
from renditions.infrastructure.manifest import write_json, write_smil


class PublishError(RuntimeError):
    pass


class Publisher:
    """Moves a finished job into export_dir/<stem>/ and writes its manifests.

    Only renditions that completed are moved and listed; failed ones are left
    where ffmpeg wrote them.
    """

    def __init__(self, export_dir: Path):
        self.export_dir = Path(export_dir)
        self.logger = logging.getLogger(__name__)

    def _move(self, source: Path, dest: Path) -> Path:
        if not source.exists():
            raise PublishError(f"Cannot publish {source}: file not found")
        self.logger.info(f"MOVE: {source} -> {dest}")
        shutil.move(str(source), str(dest))
        return dest

    def publish(self, report: JobReport) -> Path:
        """Returns the directory the job was published to."""
        missing = [p for p in [report.source, *(e.destination for e in report.succeeded)] if not p.exists()]
        if missing:
            raise PublishError(f"Cannot publish {report.source.name}: missing {[str(p) for p in missing]}")

        name = report.source.stem
        target_dir = self.export_dir / name
        target_dir.mkdir(parents=True, exist_ok=True)

        published_source = self._move(report.source, target_dir / report.source.name)

        published: List[ExportReport] = []
        for export in report.succeeded:
            dest = self._move(export.destination, target_dir / export.destination.name)
            published.append(export.model_copy(update={"destination": dest}))

        published_report = report.model_copy(update={"exports": published})
        descriptor_base = target_dir / name
        write_smil(descriptor_base, published)
        write_json(descriptor_base, published_report, published_source)

        if report.failed:
            self.logger.warning(
                f"PUBLISH_PARTIAL: {name} missing renditions {[e.label for e in report.failed]}"
            )
        self.logger.info(f"PUBLISHED: {name} -> {target_dir} ({len(published)} renditions)")
        return target_dir
