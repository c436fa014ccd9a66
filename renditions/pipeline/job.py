"""Transcode job construction.

A TranscodeJob is built once per source file: the source is probed, each
requested ladder label is resolved, and one ExportTask is created for every
rendition that does not exceed the native resolution. The task list is fixed
from then on.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Tuple

from renditions.domain.errors import ConstructionError
from renditions.domain.ladder import get_entry
from renditions.domain.models import ExportReport, ExportTask, JobReport, LadderEntry, SourceDetails

OUTPUT_EXTENSION = ".mp4"


class MediaProbe(Protocol):
    def probe(self, file_path: Path) -> SourceDetails: ...


def build_destination(source: Path, output_dir: Path, entry: LadderEntry) -> Path:
    """output_dir / <source stem><suffix>.mp4"""
    if not source.suffix or not source.stem:
        raise ConstructionError(f"source path has no file extension: {source}")
    return output_dir / f"{source.stem}{entry.suffix}{OUTPUT_EXTENSION}"


class TranscodeJob:
    """The export tasks derived from one source file.

    Use create_job() rather than instantiating directly.
    """

    def __init__(self, source: Path, output_dir: Path, details: SourceDetails, tasks: List[ExportTask]):
        self.source = source
        self.output_dir = output_dir
        self.details = details
        self._tasks: Tuple[ExportTask, ...] = tuple(tasks)
        self.worker_count = 0

    @property
    def tasks(self) -> Tuple[ExportTask, ...]:
        return self._tasks

    @property
    def duration(self) -> float:
        return self.details.duration

    def jobs_count(self) -> int:
        return len(self._tasks)

    def set_worker_count(self, n: int) -> None:
        self.worker_count = n

    @property
    def finished(self) -> bool:
        return all(t.finished for t in self._tasks)

    @property
    def failed_tasks(self) -> List[ExportTask]:
        return [t for t in self._tasks if t.error is not None]

    def report(self) -> JobReport:
        return JobReport(
            source=self.source,
            duration=self.details.duration,
            size_bytes=self.details.size_bytes,
            exports=[
                ExportReport(
                    label=t.label,
                    destination=t.destination,
                    width=t.entry.width,
                    height=t.entry.height,
                    video_bitrate=t.entry.video_bitrate,
                    audio_bitrate=t.entry.audio_bitrate,
                    done=t.done,
                    error=t.error,
                )
                for t in self._tasks
            ],
        )

    def __repr__(self) -> str:
        labels = ",".join(t.label for t in self._tasks)
        return f"TranscodeJob(source={self.source.name!r}, tasks=[{labels}])"


def create_job(
    source: Path,
    output_dir: Path,
    labels: Iterable[str],
    probe: Optional[MediaProbe] = None,
) -> TranscodeJob:
    """Probes source and builds its export tasks.

    Raises ConstructionError (ProbeError, UnknownRenditionError) without
    creating a job. Labels whose rendition would upscale the source are
    skipped silently.
    """
    logger = logging.getLogger(__name__)
    if probe is None:
        from renditions.infrastructure.ffprobe import FFprobeAdapter
        probe = FFprobeAdapter()

    source = Path(source)
    output_dir = Path(output_dir)
    details = probe.probe(source)
    native = details.resolution

    tasks: List[ExportTask] = []
    for label in labels:
        entry = get_entry(label)
        destination = build_destination(source, output_dir, entry)
        if not entry.resolution.fits(native):
            logger.info(
                f"SKIP_UPSCALE: {source.name} {label} ({entry.width}x{entry.height} > {native.width}x{native.height})"
            )
            continue
        tasks.append(ExportTask(entry=entry, destination=destination, source_duration=details.duration))

    job = TranscodeJob(source, output_dir, details, tasks)
    logger.info(f"JOB_CREATED: {source.name} duration={details.duration:.1f}s renditions={[t.label for t in tasks]}")
    return job
