import io
import pytest
from pathlib import Path
from unittest.mock import patch, MagicMock
from renditions.config.models import EncoderConfig, ProgressConfig
from renditions.domain.events import ExportCompleted, ExportFailed, ExportStarted
from renditions.domain.models import ExportStatus
from renditions.infrastructure.event_bus import EventBus
from renditions.infrastructure.ffmpeg import FFmpegAdapter
from renditions.pipeline.job import create_job
from renditions.pipeline.scheduler import Scheduler
from tests.fakes import FakeProbe

NO_WARMUP = ProgressConfig(warmup_chunks=0)


def _process(stderr: bytes, returncode: int) -> MagicMock:
    process = MagicMock()
    process.stderr = io.BytesIO(stderr)
    process.wait.return_value = returncode
    process.returncode = returncode
    return process


def _published(bus):
    return [c.args[0] for c in bus.publish.call_args_list]


def test_ffmpeg_command_generation(make_task):
    task = make_task("720p")
    adapter = FFmpegAdapter(event_bus=MagicMock())
    cmd = adapter.build_command(Path("input.mp4"), task)

    assert cmd == [
        "ffmpeg", "-y", "-i", "input.mp4",
        "-vf", "scale=1280:720",
        "-codec:v", "libx264",
        "-preset", "slow",
        "-b:v", "2500k",
        "-b:a", "128k",
        "-maxrate", "2675k",
        "-bufsize", "2675k",
        "-profile:v", "main",
        str(task.destination),
    ]


def test_ffmpeg_command_uses_encoder_config(make_task):
    encoder = EncoderConfig(ffmpeg_bin="/opt/ffmpeg", codec="libx265", preset="fast")
    adapter = FFmpegAdapter(event_bus=MagicMock(), encoder=encoder)
    cmd = adapter.build_command(Path("input.mp4"), make_task("240p"))

    assert cmd[0] == "/opt/ffmpeg"
    assert cmd[cmd.index("-codec:v") + 1] == "libx265"
    assert cmd[cmd.index("-preset") + 1] == "fast"
    assert cmd[cmd.index("-profile:v") + 1] == "baseline"


def test_ffmpeg_export_success(make_task):
    task = make_task("720p", duration=120)
    bus = MagicMock()
    stderr = b"Input #0, mov,mp4\n time=00:01:00.00 bitrate=1\n time=00:02:00.00 bitrate=1\n"

    with patch("subprocess.Popen", return_value=_process(stderr, 0)) as mock_popen:
        FFmpegAdapter(event_bus=bus, progress=NO_WARMUP).export(Path("input.mp4"), task)

    assert mock_popen.called
    assert task.status == ExportStatus.DONE
    assert task.done is True
    assert task.error is None
    assert task.progress == 100.0
    events = _published(bus)
    assert isinstance(events[0], ExportStarted)
    assert isinstance(events[-1], ExportCompleted)


def test_ffmpeg_export_reads_stderr(make_task):
    task = make_task("720p", duration=600)
    process = _process(b"time=00:01:30.00", 0)

    with patch("subprocess.Popen", return_value=process) as mock_popen:
        adapter = FFmpegAdapter(event_bus=MagicMock(), progress=NO_WARMUP)
        adapter.export(Path("input.mp4"), task)

    kwargs = mock_popen.call_args.kwargs
    assert kwargs["stderr"] is not None
    assert process.stderr.tell() == len(b"time=00:01:30.00")


def test_ffmpeg_export_nonzero_exit(make_task):
    task = make_task("240p", duration=120)
    bus = MagicMock()

    with patch("subprocess.Popen", return_value=_process(b"time=00:00:30.00\nConversion failed!\n", 1)):
        FFmpegAdapter(event_bus=bus, progress=NO_WARMUP).export(Path("input.mp4"), task)

    assert task.status == ExportStatus.FAILED
    assert task.done is False
    assert "ffmpeg exited with code 1" in task.error
    assert task.progress == pytest.approx(25.0)
    failed = [e for e in _published(bus) if isinstance(e, ExportFailed)]
    assert len(failed) == 1
    assert failed[0].error_message == task.error


def test_ffmpeg_export_spawn_failure(make_task):
    task = make_task("720p")
    bus = MagicMock()

    with patch("subprocess.Popen", side_effect=FileNotFoundError("ffmpeg not found")):
        FFmpegAdapter(event_bus=bus).export(Path("input.mp4"), task)

    assert task.status == ExportStatus.FAILED
    assert "could not start ffmpeg" in task.error
    assert not any(isinstance(e, ExportStarted) for e in _published(bus))


def test_ffmpeg_export_creates_destination_dir(tmp_path, make_task):
    task = make_task("720p")
    task.destination = tmp_path / "nested" / "out" / "video_720p.mp4"

    with patch("subprocess.Popen", return_value=_process(b"", 0)):
        FFmpegAdapter(event_bus=MagicMock()).export(Path("input.mp4"), task)

    assert task.destination.parent.is_dir()


def test_ffmpeg_export_reaps_child_when_subscriber_raises(make_task):
    task = make_task("720p", duration=120)
    bus = MagicMock()
    bus.publish.side_effect = RuntimeError("subscriber exploded")
    stderr = b"time=00:01:00.00 bitrate=1"
    process = _process(stderr, 0)

    with patch("subprocess.Popen", return_value=process):
        with pytest.raises(RuntimeError):
            FFmpegAdapter(event_bus=bus, progress=NO_WARMUP).export(Path("input.mp4"), task)

    process.wait.assert_called_once()
    assert process.stderr.tell() == len(stderr)


def test_scheduler_records_subscriber_failure_after_child_exits(tmp_path, source_file):
    bus = EventBus()

    def broken_subscriber(event):
        raise RuntimeError("subscriber exploded")

    bus.subscribe(ExportStarted, broken_subscriber)
    job = create_job(source_file, tmp_path / "out", ["720p", "480p"], probe=FakeProbe())
    processes = [_process(b"", 0), _process(b"", 0)]

    with patch("subprocess.Popen", side_effect=processes):
        Scheduler(FFmpegAdapter(event_bus=bus, progress=NO_WARMUP)).run(job, workers=1)

    for process in processes:
        process.wait.assert_called_once()
    assert all(task.status == ExportStatus.FAILED for task in job.tasks)
    assert all("subscriber exploded" in task.error for task in job.tasks)
