"""Resolution ladder table: the renditions a source can be exported to."""

from typing import Dict, List

from renditions.domain.errors import UnknownRenditionError
from renditions.domain.models import LadderEntry

P1080 = "1080p"
P720 = "720p"
P480 = "480p"
P360 = "360p"
P240 = "240p"

LADDER: Dict[str, LadderEntry] = {
    entry.label: entry
    for entry in (
        LadderEntry(label=P1080, width=1920, height=1080, video_bitrate="4500k", audio_bitrate="192k",
                    buffer_size="4800k", profile="high", suffix="_1080p"),
        LadderEntry(label=P720, width=1280, height=720, video_bitrate="2500k", audio_bitrate="128k",
                    buffer_size="2675k", profile="main", suffix="_720p"),
        LadderEntry(label=P480, width=854, height=480, video_bitrate="1000k", audio_bitrate="128k",
                    buffer_size="1075k", profile="main", suffix="_480p"),
        LadderEntry(label=P360, width=640, height=360, video_bitrate="600k", audio_bitrate="96k",
                    buffer_size="650k", profile="baseline", suffix="_360p"),
        LadderEntry(label=P240, width=426, height=240, video_bitrate="300k", audio_bitrate="64k",
                    buffer_size="325k", profile="baseline", suffix="_240p"),
    )
}

DEFAULT_LABELS: List[str] = [P1080, P720, P480, P360, P240]


def get_entry(label: str) -> LadderEntry:
    """Looks up a ladder entry by label, raising UnknownRenditionError if absent."""
    try:
        return LADDER[label]
    except KeyError:
        raise UnknownRenditionError(label) from None


def is_known(label: str) -> bool:
    return label in LADDER
