from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ExportStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


class Resolution(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(ge=0)
    height: int = Field(ge=0)

    def fits(self, other: "Resolution") -> bool:
        """True when this resolution does not exceed `other` on either axis."""
        return self.width <= other.width and self.height <= other.height


class LadderEntry(BaseModel):
    """One target rendition: dimensions plus encoding parameters."""

    model_config = ConfigDict(frozen=True)

    label: str
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    video_bitrate: str
    audio_bitrate: str
    buffer_size: str
    profile: str
    suffix: str

    @property
    def resolution(self) -> Resolution:
        return Resolution(width=self.width, height=self.height)


class SourceDetails(BaseModel):
    """Probe record for a source file."""

    path: Path
    duration: float = 0.0  # seconds, 0 when unknown
    resolution: Resolution
    size_bytes: int = 0


class ExportTask(BaseModel):
    """A single source -> rendition conversion and its runtime state.

    progress, error and done are written by the thread running the export
    and read by progress pollers; each field has exactly one writer.
    """

    entry: LadderEntry
    destination: Path
    source_duration: float = 0.0
    status: ExportStatus = ExportStatus.PENDING
    progress: float = 0.0
    error: Optional[str] = None
    done: bool = False

    @property
    def label(self) -> str:
        return self.entry.label

    @property
    def resolution(self) -> Resolution:
        return self.entry.resolution

    @property
    def finished(self) -> bool:
        return self.status in (ExportStatus.DONE, ExportStatus.FAILED)

    def mark_running(self) -> None:
        if self.status == ExportStatus.PENDING:
            self.status = ExportStatus.RUNNING

    def fail(self, error: Exception) -> None:
        """Records the first failure; later calls are ignored."""
        if self.error is not None or self.done:
            return
        self.error = str(error) or type(error).__name__
        self.status = ExportStatus.FAILED

    def complete(self) -> None:
        if self.error is not None or self.done:
            return
        self.progress = 100.0
        self.done = True
        self.status = ExportStatus.DONE


class ExportReport(BaseModel):
    label: str
    destination: Path
    width: int
    height: int
    video_bitrate: str
    audio_bitrate: str
    done: bool
    error: Optional[str] = None


class JobReport(BaseModel):
    """Snapshot of a finished (or running) job, used for manifests and summaries."""

    source: Path
    duration: float
    size_bytes: int
    exports: List[ExportReport] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[ExportReport]:
        return [e for e in self.exports if e.done]

    @property
    def failed(self) -> List[ExportReport]:
        return [e for e in self.exports if e.error is not None]
