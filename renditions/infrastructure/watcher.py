"""
Directory watcher.

Monitors a directory for newly created (or moved-in) video files and hands
each one to a callback once the file has stopped growing.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Set

from watchdog.events import FileCreatedEvent, FileMovedEvent, FileSystemEventHandler
from watchdog.observers import Observer


def file_size(path: Path) -> int:
    """Get file size in bytes, returns -1 when the file is not readable."""
    try:
        return path.stat().st_size
    except OSError:
        return -1


def wait_until_stable(path: Path, wait_seconds: float = 5.0, attempts: int = 60) -> bool:
    """
    Wait until the file size stops changing between two checks.

    Args:
        path: Path to the file.
        wait_seconds: Seconds between size checks.
        attempts: Maximum number of checks before giving up.

    Returns:
        True once the size is stable and non-zero, False if the file vanished
        or never settled.
    """
    previous = file_size(path)
    if wait_seconds <= 0:
        return previous > 0
    for _ in range(attempts):
        time.sleep(wait_seconds)
        current = file_size(path)
        if current < 0:
            return False
        if current == previous and current > 0:
            return True
        previous = current
    return False


class NewFileHandler:
    """Filters candidate paths and dispatches each new source exactly once."""

    def __init__(
        self,
        callback: Callable[[Path], None],
        extensions: List[str],
        stable_wait: float = 5.0,
    ):
        self.callback = callback
        self.extensions = {ext.lower() for ext in extensions}
        self.stable_wait = stable_wait
        self.processing: Set[Path] = set()
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def accepts(self, path: Path) -> bool:
        if path.suffix.lower() not in self.extensions:
            return False
        # Skip partial downloads and hidden files
        return not path.name.startswith(".")

    def handle_file(self, path: Path) -> None:
        if not self.accepts(path):
            return

        with self._lock:
            if path in self.processing:
                return
            self.processing.add(path)

        try:
            if not wait_until_stable(path, wait_seconds=self.stable_wait):
                self.logger.warning(f"WATCH_UNSTABLE: {path} did not settle, ignoring")
                return
            self.logger.info(f"WATCH_NEW_FILE: {path}")
            self.callback(path)
        except Exception:
            self.logger.exception(f"WATCH_CALLBACK_FAILED: {path}")
        finally:
            with self._lock:
                self.processing.discard(path)


class WatchdogHandler(FileSystemEventHandler):
    """Watchdog event handler forwarding file events to NewFileHandler."""

    def __init__(self, handler: NewFileHandler):
        super().__init__()
        self.handler = handler

    def _dispatch_path(self, raw_path) -> None:
        src = raw_path.decode() if isinstance(raw_path, bytes) else raw_path
        # Run in a thread to not block the observer
        threading.Thread(
            target=self.handler.handle_file,
            args=(Path(src),),
            daemon=True,
        ).start()

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory:
            self._dispatch_path(event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        if not event.is_directory:
            self._dispatch_path(event.dest_path)


class DirectoryWatcher:
    """Watch a directory for new source files."""

    def __init__(
        self,
        watch_path: Path,
        callback: Callable[[Path], None],
        extensions: List[str],
        stable_wait: float = 5.0,
        recursive: bool = False,
    ):
        self.watch_path = Path(watch_path)
        self.recursive = recursive
        self.stop_event = threading.Event()
        self.handler = NewFileHandler(callback, extensions, stable_wait=stable_wait)
        self._observer: Optional[Observer] = None
        self.logger = logging.getLogger(__name__)

    def start(self) -> None:
        if not self.watch_path.is_dir():
            raise FileNotFoundError(f"Watch directory does not exist: {self.watch_path}")
        observer = Observer()
        observer.schedule(WatchdogHandler(self.handler), str(self.watch_path), recursive=self.recursive)
        observer.start()
        self._observer = observer
        self.logger.info(f"WATCH_START: {self.watch_path.resolve()} (recursive={self.recursive})")

    def stop(self) -> None:
        self.stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self.logger.info("WATCH_STOP")

    def wait(self) -> None:
        """Blocks until stop() is called or Ctrl+C."""
        try:
            while not self.stop_event.is_set():
                time.sleep(0.5)
        except KeyboardInterrupt:
            pass
