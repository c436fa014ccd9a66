"""Scheduler: runs the export tasks of a job with bounded concurrency.

Two admission policies are available:

- ``batch`` (default): tasks are launched in list order; once W tasks are in
  flight the scheduler waits for the whole batch to finish before admitting
  the next one. A fast task cannot free its slot until its batch drains.
- ``pool``: W persistent workers drain the task list, and a slot is refilled
  as soon as any task finishes.

start() returns immediately; all work happens on a background thread.
"""

import concurrent.futures
import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol

from renditions.config.models import SCHEDULING_MODES
from renditions.domain.events import JobFinished
from renditions.domain.models import ExportTask
from renditions.infrastructure.event_bus import EventBus
from renditions.pipeline.job import TranscodeJob

DEFAULT_WORKERS = 2


class ExportRunner(Protocol):
    def export(self, source: Path, task: ExportTask) -> None: ...


def resolve_workers(requested: Optional[int]) -> int:
    """Worker counts below 1 (or unset) fall back to DEFAULT_WORKERS."""
    if requested is None or requested < 1:
        return DEFAULT_WORKERS
    return requested


class Scheduler:
    def __init__(self, runner: ExportRunner, mode: str = "batch", event_bus: Optional[EventBus] = None):
        if mode not in SCHEDULING_MODES:
            raise ValueError(f"Unsupported scheduling mode: {mode}")
        self.runner = runner
        self.mode = mode
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)
        self._thread: Optional[threading.Thread] = None

    def start(self, job: TranscodeJob, workers: Optional[int] = None) -> threading.Thread:
        """Launches every task of the job in the background and returns at once."""
        if workers is not None:
            job.set_worker_count(workers)
        count = resolve_workers(job.worker_count)
        job.set_worker_count(count)

        target = self._run_batches if self.mode == "batch" else self._run_pool
        self._thread = threading.Thread(
            target=self._run,
            args=(target, job, count),
            name=f"scheduler-{job.source.stem}",
            daemon=True,
        )
        self._thread.start()
        return self._thread

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Blocks until every task has finished. Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def run(self, job: TranscodeJob, workers: Optional[int] = None) -> None:
        """start() followed by wait()."""
        self.start(job, workers)
        self.wait()

    def _run(self, target, job: TranscodeJob, workers: int) -> None:
        self.logger.info(
            f"SCHEDULER_START: {job.source.name} tasks={job.jobs_count()} workers={workers} mode={self.mode}"
        )
        target(job, workers)
        failed = len(job.failed_tasks)
        self.logger.info(
            f"SCHEDULER_END: {job.source.name} succeeded={job.jobs_count() - failed} failed={failed}"
        )
        if self.event_bus is not None:
            self.event_bus.publish(
                JobFinished(source=job.source, succeeded=job.jobs_count() - failed, failed=failed)
            )

    def _execute(self, job: TranscodeJob, task: ExportTask) -> None:
        try:
            self.runner.export(job.source, task)
        except Exception as e:
            # Runners record their own failures; anything escaping is a runner bug
            self.logger.exception(f"EXPORT_CRASHED: {task.destination.name}")
            task.fail(e)

    def _run_batches(self, job: TranscodeJob, workers: int) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="export") as executor:
            batch: List[concurrent.futures.Future] = []
            for task in job.tasks:
                batch.append(executor.submit(self._execute, job, task))
                if len(batch) >= workers:
                    concurrent.futures.wait(batch, return_when=concurrent.futures.ALL_COMPLETED)
                    batch = []
            if batch:
                concurrent.futures.wait(batch, return_when=concurrent.futures.ALL_COMPLETED)

    def _run_pool(self, job: TranscodeJob, workers: int) -> None:
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="export") as executor:
            futures = [executor.submit(self._execute, job, task) for task in job.tasks]
            concurrent.futures.wait(futures, return_when=concurrent.futures.ALL_COMPLETED)
