"""Watch service: turns every detected source file into published renditions.

For each new file: build a TranscodeJob into the work directory, run it with
the configured scheduler, then hand the finished job to the Publisher.
Construction failures are logged and the file is left in place.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from renditions.config.models import AppConfig
from renditions.domain.errors import ConstructionError
from renditions.domain.events import JobCreated, SourceDetected
from renditions.infrastructure.event_bus import EventBus
from renditions.pipeline.job import MediaProbe, TranscodeJob, create_job
from renditions.pipeline.progress import poll_progress
from renditions.pipeline.publisher import Publisher
from renditions.pipeline.scheduler import ExportRunner, Scheduler


class WatchService:
    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        probe: MediaProbe,
        runner: ExportRunner,
        publisher: Optional[Publisher] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.probe = probe
        self.runner = runner
        self.publisher = publisher or Publisher(config.paths.export_dir)
        self.logger = logging.getLogger(__name__)
        # One job at a time; each job already runs `workers` ffmpeg processes
        self._job_lock = threading.Lock()

    def build_job(self, source: Path) -> TranscodeJob:
        job = create_job(source, self.config.paths.work_dir, self.config.general.ladder, probe=self.probe)
        job.set_worker_count(self.config.general.workers)
        self.event_bus.publish(JobCreated(source=source, labels=[t.label for t in job.tasks]))
        return job

    def process(self, source: Path) -> Optional[Path]:
        """Runs the full pipeline for one source. Returns the publish directory."""
        self.event_bus.publish(SourceDetected(path=source))
        with self._job_lock:
            try:
                job = self.build_job(source)
            except ConstructionError as e:
                self.logger.error(f"JOB_REJECTED: {source.name}: {e}")
                return None

            scheduler = Scheduler(self.runner, mode=self.config.general.scheduling, event_bus=self.event_bus)
            scheduler.start(job)
            for value in poll_progress(job, interval=self.config.progress.poll_interval_s):
                self.logger.debug(f"JOB_PROGRESS: {source.name} {value:.1f}%")
            scheduler.wait()

            report = job.report()
            for failed in report.failed:
                self.logger.error(f"RENDITION_FAILED: {source.name} {failed.label}: {failed.error}")
            return self.publisher.publish(report)
