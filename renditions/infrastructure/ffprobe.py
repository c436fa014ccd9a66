import subprocess
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from renditions.domain.errors import ProbeError
from renditions.domain.models import Resolution, SourceDetails


class FFprobeAdapter:
    """Media probe: reads duration and native resolution of a source with ffprobe."""

    def __init__(self, ffprobe_bin: str = "ffprobe"):
        self.ffprobe_bin = ffprobe_bin
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def _parse_clock(cls, value: Any) -> float:
        """Parses Matroska-style DURATION tags (HH:MM:SS.fff or MM:SS)."""
        if value is None:
            return 0.0
        text = str(value).strip()
        if ":" not in text:
            return cls._to_float(text)
        try:
            parts = [float(p) for p in text.split(":")]
        except ValueError:
            return 0.0
        seconds = 0.0
        for part in parts:
            seconds = seconds * 60 + part
        return seconds

    def _run(self, file_path: Path) -> Dict[str, Any]:
        cmd = [
            self.ffprobe_bin,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(file_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ProbeError(f"probe failed for {file_path}: {e}") from e
        if result.returncode != 0:
            raise ProbeError(f"probe failed for {file_path}: {result.stderr.strip()}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeError(f"probe failed for {file_path}: invalid ffprobe output") from e

    def _duration(self, fmt: Dict[str, Any], stream: Dict[str, Any]) -> float:
        # format.duration, then stream.duration, then DURATION tags
        duration = self._to_float(fmt.get("duration"))
        if duration <= 0:
            duration = self._to_float(stream.get("duration"))
        if duration <= 0:
            tags: Dict[str, Any] = {**(stream.get("tags") or {}), **(fmt.get("tags") or {})}
            duration = self._parse_clock(tags.get("DURATION") or tags.get("duration"))
        return max(duration, 0.0)

    def probe(self, file_path: Path) -> SourceDetails:
        """Returns duration and native resolution, raising ProbeError on failure."""
        data = self._run(file_path)

        streams = data.get("streams", [])
        video_stream: Optional[Dict[str, Any]] = next(
            (s for s in streams if s.get("codec_type") == "video"),
            next((s for s in streams if s.get("width") and s.get("height")), None),
        )
        if not video_stream:
            raise ProbeError(f"probe failed for {file_path}: no video stream")

        width = int(self._to_float(video_stream.get("width")))
        height = int(self._to_float(video_stream.get("height")))
        if width <= 0 or height <= 0:
            raise ProbeError(f"probe failed for {file_path}: no video dimensions")

        fmt = data.get("format", {}) or {}
        details = SourceDetails(
            path=file_path,
            duration=self._duration(fmt, video_stream),
            resolution=Resolution(width=width, height=height),
            size_bytes=int(self._to_float(fmt.get("size"))),
        )
        self.logger.debug(
            f"PROBE: {file_path.name} {details.resolution.width}x{details.resolution.height} "
            f"duration={details.duration:.2f}s"
        )
        return details
