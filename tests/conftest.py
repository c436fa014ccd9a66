import pytest
from typing import Optional
from renditions.config.models import AppConfig
from renditions.domain.models import ExportTask
from renditions.domain.ladder import get_entry
from renditions.infrastructure.event_bus import EventBus
from tests.fakes import FakeProbe

# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def make_task(tmp_path):
    """Factory for standalone ExportTasks."""
    def _make(label: str = "720p", duration: float = 600.0, progress: float = 0.0,
              error: Optional[str] = None) -> ExportTask:
        task = ExportTask(
            entry=get_entry(label),
            destination=tmp_path / f"video_{label}.mp4",
            source_duration=duration,
            progress=progress,
        )
        if error is not None:
            task.fail(RuntimeError(error))
        return task
    return _make


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def fast_config(tmp_path):
    """AppConfig with short poll intervals and tmp directories."""
    return AppConfig(
        general={"workers": 2, "scheduling": "batch", "ladder": ["1080p", "720p", "240p"]},
        paths={
            "watch_dir": str(tmp_path / "watch"),
            "work_dir": str(tmp_path / "work"),
            "export_dir": str(tmp_path / "export"),
        },
        progress={"poll_interval_s": 0.01, "warmup_chunks": 0},
        watch={"stable_wait_s": 0},
    )


@pytest.fixture
def source_file(tmp_path):
    src = tmp_path / "watch" / "movie.mp4"
    src.parent.mkdir(parents=True, exist_ok=True)
    src.write_bytes(b"x" * 1000)
    return src
