"""Domain events for the rendition pipeline.

Events flow through the EventBus so the scheduler and the watch service stay
decoupled from whatever is presenting progress (CLI, logs).

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import List
from pydantic import BaseModel
from .models import ExportTask


class Event(BaseModel):
    """Base class for all domain events.

    Events are validated Pydantic models. They are not frozen by default.
    """

    pass


class ExportEvent(Event):
    """Base class for events related to a single export task."""

    task: ExportTask


class ExportStarted(ExportEvent):
    """Emitted when the ffmpeg subprocess for a task has been launched."""

    pass


class ExportCompleted(ExportEvent):
    """Emitted when ffmpeg exits cleanly."""

    pass


class ExportFailed(ExportEvent):
    """Emitted when a task could not be spawned or exited non-zero."""

    error_message: str


class SourceDetected(Event):
    """Emitted by the watcher when a new stable source file appears."""

    path: Path


class JobCreated(Event):
    source: Path
    labels: List[str]


class JobFinished(Event):
    """Emitted after every task of a job reached a terminal state."""

    source: Path
    succeeded: int = 0
    failed: int = 0
