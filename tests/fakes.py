"""Test doubles shared by unit and integration tests."""

import threading
from pathlib import Path
from typing import List, Optional
from renditions.domain.errors import TaskExecutionError
from renditions.domain.models import ExportTask, Resolution, SourceDetails


class FakeProbe:
    """Media probe returning a fixed record (or raising a fixed error)."""

    def __init__(self, width: int = 1920, height: int = 1080, duration: float = 120.0,
                 size_bytes: int = 1000, error: Optional[Exception] = None):
        self.width = width
        self.height = height
        self.duration = duration
        self.size_bytes = size_bytes
        self.error = error
        self.calls: List[Path] = []

    def probe(self, file_path: Path) -> SourceDetails:
        self.calls.append(file_path)
        if self.error is not None:
            raise self.error
        return SourceDetails(
            path=file_path,
            duration=self.duration,
            resolution=Resolution(width=self.width, height=self.height),
            size_bytes=self.size_bytes,
        )

class FakeRunner:
    """Export runner that completes tasks instantly, failing the given labels.

    When write_outputs is set, a small file is written at each successful
    destination so publishing can move it.
    """

    def __init__(self, fail_labels=(), write_outputs: bool = False):
        self.fail_labels = set(fail_labels)
        self.write_outputs = write_outputs
        self.exported: List[str] = []
        self._lock = threading.Lock()

    def export(self, source: Path, task: ExportTask) -> None:
        with self._lock:
            self.exported.append(task.label)
        task.mark_running()
        if task.label in self.fail_labels:
            task.progress = 30.0
            task.fail(TaskExecutionError("ffmpeg exited with code 1", returncode=1))
            return
        if self.write_outputs:
            task.destination.parent.mkdir(parents=True, exist_ok=True)
            task.destination.write_bytes(b"rendition")
        task.complete()

