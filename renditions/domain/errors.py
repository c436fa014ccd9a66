"""Exception hierarchy for job construction and export execution.

Construction errors are raised to the caller and abort job creation.
Task errors are never raised out of the scheduler: they are recorded on the
owning ExportTask and inspected by the caller once the job has finished.
"""

from typing import Optional


class RenditionsError(Exception):
    """Base class for all renditions errors."""


class ConstructionError(RenditionsError):
    """A TranscodeJob could not be built."""


class UnknownRenditionError(ConstructionError):
    def __init__(self, label: str):
        super().__init__(f"unknown rendition: {label}")
        self.label = label


class ProbeError(ConstructionError):
    """ffprobe failed or returned unusable output."""


class TaskError(RenditionsError):
    """Failure recorded on a single ExportTask."""


class TaskSpawnError(TaskError):
    """The ffmpeg subprocess could not be started."""


class TaskExecutionError(TaskError):
    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode
