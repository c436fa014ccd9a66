"""Manifest writers for published renditions.

Two descriptors are written next to the published files:

- ``<name>.smil``: a SMIL switch listing every rendition, consumed by
  streaming servers for adaptive playback.
- ``<name>.json``: a small summary (id, source path, duration, size, heights).
"""

import json
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, List

from renditions.domain.models import ExportReport, JobReport


def _bitrate_bps(value: str) -> int:
    """'2500k' -> 2500000"""
    text = value.strip().lower()
    multiplier = 1
    if text.endswith("k"):
        multiplier, text = 1000, text[:-1]
    elif text.endswith("m"):
        multiplier, text = 1000000, text[:-1]
    return int(float(text) * multiplier)


def render_smil(exports: List[ExportReport]) -> str:
    smil = ET.Element("smil", {"title": ""})
    body = ET.SubElement(smil, "body")
    switch = ET.SubElement(body, "switch")
    for export in sorted(exports, key=lambda e: e.height, reverse=True):
        video = ET.SubElement(switch, "video", {
            "height": str(export.height),
            "src": export.destination.name,
            "systemLanguage": "eng",
            "width": str(export.width),
        })
        ET.SubElement(video, "param", {
            "name": "videoBitrate", "value": str(_bitrate_bps(export.video_bitrate)), "valuetype": "data",
        })
        ET.SubElement(video, "param", {
            "name": "audioBitrate", "value": str(_bitrate_bps(export.audio_bitrate)), "valuetype": "data",
        })
    ET.indent(smil)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(smil, encoding="unicode") + "\n"


def build_descriptor(report: JobReport, published_source: Path) -> Dict[str, Any]:
    return {
        "videoId": published_source.stem,
        "fullpath": str(published_source),
        "duration": report.duration,
        "size": report.size_bytes,
        "qualities": [e.height for e in report.exports],
    }


def write_smil(dest: Path, exports: List[ExportReport]) -> Path:
    path = dest.with_name(dest.name + ".smil")
    path.write_text(render_smil(exports), encoding="utf-8")
    return path


def write_json(dest: Path, report: JobReport, published_source: Path) -> Path:
    path = dest.with_name(dest.name + ".json")
    path.write_text(json.dumps(build_descriptor(report, published_source), indent=2), encoding="utf-8")
    return path
