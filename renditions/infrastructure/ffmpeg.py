import subprocess
import logging
import threading
import time
from pathlib import Path
from typing import List, Optional
from renditions.config.models import EncoderConfig, ProgressConfig
from renditions.domain.errors import TaskExecutionError, TaskSpawnError
from renditions.domain.events import ExportCompleted, ExportFailed, ExportStarted
from renditions.domain.models import ExportTask
from renditions.infrastructure.event_bus import EventBus
from renditions.pipeline.progress import ProgressParser


class FFmpegAdapter:
    """Runs one export task as an ffmpeg subprocess and tracks its progress."""

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        encoder: Optional[EncoderConfig] = None,
        progress: Optional[ProgressConfig] = None,
    ):
        self.event_bus = event_bus or EventBus()
        self.encoder = encoder or EncoderConfig()
        self.progress = progress or ProgressConfig()
        self.logger = logging.getLogger(__name__)

    def build_command(self, source: Path, task: ExportTask) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        entry = task.entry
        return [
            self.encoder.ffmpeg_bin,
            "-y",  # Overwrite output files
            "-i", str(source),
            "-vf", f"scale={entry.width}:{entry.height}",
            "-codec:v", self.encoder.codec,
            "-preset", self.encoder.preset,
            "-b:v", entry.video_bitrate,
            "-b:a", entry.audio_bitrate,
            "-maxrate", entry.buffer_size,
            "-bufsize", entry.buffer_size,
            "-profile:v", entry.profile,
            str(task.destination),
        ]

    def _parser(self, task: ExportTask) -> ProgressParser:
        return ProgressParser(
            task,
            chunk_size=self.progress.chunk_size,
            warmup_chunks=self.progress.warmup_chunks,
            fallback_duration=self.progress.fallback_duration_s,
        )

    def _fail(self, task: ExportTask, error: Exception) -> None:
        task.fail(error)
        self.logger.error(f"EXPORT_FAILED: {task.destination.name}: {task.error}")
        self.event_bus.publish(ExportFailed(task=task, error_message=task.error or ""))

    def export(self, source: Path, task: ExportTask) -> None:
        """Executes the conversion. Failures are recorded on the task, never raised."""
        cmd = self.build_command(source, task)
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")
        start_time = time.monotonic()

        task.destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self._fail(task, TaskSpawnError(f"could not start {cmd[0]}: {e}"))
            return

        task.mark_running()
        reader_thread = None
        if process.stderr is not None:
            reader_thread = threading.Thread(
                target=self._parser(task).consume,
                args=(process.stderr,),
                name=f"progress-{task.label}",
                daemon=True,
            )
            reader_thread.start()

        try:
            self.logger.info(f"EXPORT_START: {source.name} -> {task.destination.name} ({task.label})")
            self.event_bus.publish(ExportStarted(task=task))
        finally:
            # The worker slot is held until the child exits
            returncode = process.wait()
            if reader_thread is not None:
                reader_thread.join()
        elapsed = time.monotonic() - start_time

        if returncode != 0:
            self._fail(task, TaskExecutionError(f"ffmpeg exited with code {returncode}", returncode=returncode))
            return

        task.complete()
        self.logger.info(f"EXPORT_END: {task.destination.name} status=done elapsed={elapsed:.2f}s")
        self.event_bus.publish(ExportCompleted(task=task))
