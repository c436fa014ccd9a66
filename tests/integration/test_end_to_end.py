"""End-to-end: job construction -> scheduler -> ffmpeg adapter -> aggregator.

ffmpeg itself is replaced: either by patching subprocess.Popen, or by a small
shell script that mimics ffmpeg's stderr output and exit codes.
"""

import io
import os
import stat
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch

from renditions.config.models import EncoderConfig, ProgressConfig
from renditions.domain.events import ExportFailed, JobFinished
from renditions.domain.models import ExportStatus
from renditions.infrastructure.event_bus import EventBus
from renditions.infrastructure.ffmpeg import FFmpegAdapter
from renditions.pipeline.job import create_job
from renditions.pipeline.progress import poll_progress
from renditions.pipeline.scheduler import Scheduler
from tests.fakes import FakeProbe

FAST_PROGRESS = ProgressConfig(warmup_chunks=0, poll_interval_s=0.01)

FAKE_FFMPEG = """#!/bin/sh
for arg in "$@"; do dest="$arg"; done
case "$dest" in
  *_240p.mp4)
    echo "frame=   10 time=00:00:05.00 bitrate=N/A" >&2
    echo "Conversion failed!" >&2
    exit 1
    ;;
esac
echo "ffmpeg version n6.1 Copyright (c) 2000-2023" >&2
echo "frame=  100 fps=50 q=28.0 size=512kB time=00:01:00.00 bitrate=1000kbits/s" >&2
echo "frame=  200 fps=50 q=28.0 size=1024kB time=00:02:00.00 bitrate=1000kbits/s" >&2
: > "$dest"
exit 0
"""


def _fake_popen(cmd, **kwargs):
    dest = cmd[-1]
    process = MagicMock()
    if dest.endswith("_240p.mp4"):
        process.stderr = io.BytesIO(b"time=00:00:10.00\nConversion failed!\n")
        process.wait.return_value = 1
    else:
        process.stderr = io.BytesIO(b"time=00:01:00.00 ... time=00:02:00.00\n")
        process.wait.return_value = 0
    return process


def test_partial_failure_reaches_100_with_succeeded_tasks(tmp_path):
    job = create_job(tmp_path / "source.mp4", tmp_path / "out", ["1080p", "720p", "240p"],
                     probe=FakeProbe(width=1920, height=1080, duration=120.0))
    assert [t.label for t in job.tasks] == ["1080p", "720p", "240p"]

    bus = EventBus()
    failures = []
    bus.subscribe(ExportFailed, failures.append)
    adapter = FFmpegAdapter(bus, progress=FAST_PROGRESS)
    scheduler = Scheduler(adapter)

    with patch("subprocess.Popen", side_effect=_fake_popen):
        scheduler.start(job, 2)
        values = list(poll_progress(job, interval=0.01))
        assert scheduler.wait(timeout=10)

    assert values[-1] == 100.0
    assert all(0.0 <= v <= 100.0 for v in values)
    tasks = {t.label: t for t in job.tasks}
    assert tasks["1080p"].done and tasks["720p"].done
    assert tasks["240p"].error is not None
    assert tasks["240p"].status == ExportStatus.FAILED
    assert [e.task.label for e in failures] == ["240p"]


def test_all_failed_job_reports_zero(tmp_path):
    job = create_job(tmp_path / "source.mp4", tmp_path / "out", ["240p"],
                     probe=FakeProbe(width=1920, height=1080, duration=120.0))

    with patch("subprocess.Popen", side_effect=_fake_popen):
        scheduler = Scheduler(FFmpegAdapter(EventBus(), progress=FAST_PROGRESS))
        scheduler.start(job)
        assert scheduler.wait(timeout=10)

    assert list(poll_progress(job, interval=0)) == [0.0]


@pytest.mark.skipif(os.name == "nt", reason="fake ffmpeg is a POSIX shell script")
@pytest.mark.parametrize("mode", ["batch", "pool"])
def test_real_subprocesses(tmp_path, mode):
    ffmpeg = tmp_path / "fake-ffmpeg"
    ffmpeg.write_text(FAKE_FFMPEG)
    ffmpeg.chmod(ffmpeg.stat().st_mode | stat.S_IEXEC)

    source = tmp_path / "source.mp4"
    source.write_bytes(b"\x00" * 64)
    job = create_job(source, tmp_path / "out", ["1080p", "720p", "480p", "240p"],
                     probe=FakeProbe(width=1920, height=1080, duration=120.0))

    bus = EventBus()
    finished = []
    bus.subscribe(JobFinished, finished.append)
    adapter = FFmpegAdapter(bus, encoder=EncoderConfig(ffmpeg_bin=str(ffmpeg)), progress=FAST_PROGRESS)
    scheduler = Scheduler(adapter, mode=mode, event_bus=bus)

    scheduler.start(job, 2)
    values = list(poll_progress(job, interval=0.01))
    assert scheduler.wait(timeout=30)

    assert values[-1] == 100.0
    done = [t for t in job.tasks if t.done]
    assert [t.label for t in done] == ["1080p", "720p", "480p"]
    for task in done:
        assert Path(task.destination).exists()
    failed = job.failed_tasks
    assert [t.label for t in failed] == ["240p"]
    assert "code 1" in failed[0].error
    assert finished[0].succeeded == 3 and finished[0].failed == 1


@pytest.mark.skipif(os.name == "nt", reason="uses a POSIX path")
def test_missing_binary_records_spawn_error(tmp_path):
    job = create_job(tmp_path / "source.mp4", tmp_path / "out", ["720p"], probe=FakeProbe())
    adapter = FFmpegAdapter(EventBus(), encoder=EncoderConfig(ffmpeg_bin=str(tmp_path / "no-such-ffmpeg")))

    Scheduler(adapter).run(job, 1)

    assert job.tasks[0].status == ExportStatus.FAILED
    assert "could not start" in job.tasks[0].error
