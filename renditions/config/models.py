from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from renditions.domain.ladder import DEFAULT_LABELS, is_known

SCHEDULING_MODES = {"batch", "pool"}


class GeneralConfig(BaseModel):
    workers: int = Field(default=2, gt=0)
    scheduling: str = Field(default="batch")
    extensions: List[str] = Field(default_factory=lambda: [".mp4"])
    ladder: List[str] = Field(default_factory=lambda: list(DEFAULT_LABELS))
    debug: bool = False
    log_path: Optional[str] = None

    @field_validator("scheduling")
    @classmethod
    def validate_scheduling(cls, v: str) -> str:
        mode = v.strip().lower()
        if mode not in SCHEDULING_MODES:
            raise ValueError(f"Unsupported scheduling mode: {v}. Use one of {sorted(SCHEDULING_MODES)}")
        return mode

    @field_validator("ladder")
    @classmethod
    def validate_ladder(cls, v: List[str]) -> List[str]:
        unknown = [label for label in v if not is_known(label)]
        if unknown:
            raise ValueError(f"Unknown ladder labels: {unknown}")
        return v

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [(ext if ext.startswith(".") else f".{ext}").lower() for ext in v]


class PathsConfig(BaseModel):
    watch_dir: Path = Path("watch")
    work_dir: Path = Path("work")
    export_dir: Path = Path("export")


class EncoderConfig(BaseModel):
    """ffmpeg/ffprobe binaries and the codec settings shared by every rendition."""
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    codec: str = "libx264"
    preset: str = "slow"


class ProgressConfig(BaseModel):
    chunk_size: int = Field(default=1024, ge=64)
    warmup_chunks: int = Field(default=50, ge=0)
    fallback_duration_s: float = Field(default=900.0, gt=0)  # 15 min
    poll_interval_s: float = Field(default=1.0, gt=0)


class WatchConfig(BaseModel):
    stable_wait_s: float = Field(default=5.0, ge=0)
    recursive: bool = False


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
