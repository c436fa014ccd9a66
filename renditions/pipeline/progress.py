"""Progress tracking for export tasks.

ffmpeg reports its position on stderr as ``time=HH:MM:SS.xx`` among other
diagnostics. ProgressParser turns that stream into a percentage on the owning
ExportTask; ProgressAggregator polls the tasks of a job and yields one
job-level percentage per interval until the job is complete.
"""

import logging
import re
import time
from typing import BinaryIO, Iterator, Optional, Sequence, TYPE_CHECKING

from renditions.domain.models import ExportTask

if TYPE_CHECKING:
    from renditions.pipeline.job import TranscodeJob

TIME_RE = re.compile(r"time=(\d+):(\d{2}):(\d{2})")

DEFAULT_CHUNK_SIZE = 1024
DEFAULT_WARMUP_CHUNKS = 50
DEFAULT_FALLBACK_DURATION = 15 * 60.0

logger = logging.getLogger(__name__)


def parse_elapsed(text: str) -> Optional[float]:
    """Seconds encoded by the last time=HH:MM:SS marker in text, or None."""
    last = None
    for last in TIME_RE.finditer(text):
        pass
    if last is None:
        return None
    hours, minutes, seconds = (int(g) for g in last.groups())
    return float(hours * 3600 + minutes * 60 + seconds)


def compute_progress(elapsed: float, duration: float, fallback_duration: float = DEFAULT_FALLBACK_DURATION) -> float:
    if duration <= 0:
        duration = fallback_duration
    return min(100.0, 100.0 * elapsed / duration)


class ProgressParser:
    """Feeds an ffmpeg stderr stream into the progress field of one task.

    The first ``warmup_chunks`` reads are discarded: ffmpeg prints its banner
    and stream mapping before any meaningful timestamp.
    """

    def __init__(
        self,
        task: ExportTask,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        warmup_chunks: int = DEFAULT_WARMUP_CHUNKS,
        fallback_duration: float = DEFAULT_FALLBACK_DURATION,
    ):
        self.task = task
        self.chunk_size = chunk_size
        self.warmup_chunks = warmup_chunks
        self.fallback_duration = fallback_duration
        self.chunks_read = 0

    def feed(self, chunk: bytes) -> None:
        self.chunks_read += 1
        if self.chunks_read <= self.warmup_chunks or not chunk:
            return
        elapsed = parse_elapsed(chunk.decode("utf-8", errors="replace"))
        if elapsed is None:
            return
        self.task.progress = compute_progress(elapsed, self.task.source_duration, self.fallback_duration)

    def consume(self, stream: BinaryIO) -> None:
        """Reads until EOF. Returns when the subprocess closes its stderr."""
        # read1 returns whatever is available instead of waiting for a full chunk
        read = getattr(stream, "read1", stream.read)
        while True:
            chunk = read(self.chunk_size)
            if not chunk:
                break
            self.feed(chunk)
        logger.debug(f"PROGRESS_EOF: {self.task.label} chunks={self.chunks_read} progress={self.task.progress:.1f}")


def aggregate(tasks: Sequence[ExportTask]) -> Optional[float]:
    """Mean progress over tasks without an error, clamped to 100.

    Returns None when there is no task left to average over.
    """
    active = [t for t in tasks if t.error is None]
    if not active:
        return None
    return min(100.0, sum(t.progress for t in active) / len(active))


class ProgressAggregator:
    """Iterator of job-level progress values, one per poll interval.

    Stops after yielding 100. A job whose tasks all failed yields 0 once and
    stops; a job with no tasks yields 100 once and stops.
    """

    def __init__(self, tasks: Sequence[ExportTask], interval: float = 1.0):
        self.tasks = tasks
        self.interval = interval
        self.closed = False

    def __iter__(self) -> Iterator[float]:
        return self

    def __next__(self) -> float:
        if self.closed:
            raise StopIteration
        time.sleep(self.interval)
        if not self.tasks:
            self.closed = True
            return 100.0
        value = aggregate(self.tasks)
        if value is None:
            logger.warning("PROGRESS: every export failed, reporting 0")
            self.closed = True
            return 0.0
        if value >= 100.0:
            self.closed = True
            return 100.0
        return value


def poll_progress(job: "TranscodeJob", interval: float = 1.0) -> ProgressAggregator:
    return ProgressAggregator(job.tasks, interval=interval)
