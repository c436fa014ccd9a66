import typer
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from renditions.config.loader import load_config
from renditions.config.models import AppConfig
from renditions.domain.errors import ConstructionError
from renditions.domain.events import ExportCompleted, ExportFailed, ExportStarted
from renditions.domain.ladder import LADDER
from renditions.infrastructure.event_bus import EventBus
from renditions.infrastructure.ffmpeg import FFmpegAdapter
from renditions.infrastructure.ffprobe import FFprobeAdapter
from renditions.infrastructure.logging import setup_logging
from renditions.infrastructure.watcher import DirectoryWatcher
from renditions.pipeline.job import TranscodeJob, create_job
from renditions.pipeline.progress import poll_progress
from renditions.pipeline.publisher import Publisher
from renditions.pipeline.scheduler import Scheduler
from renditions.pipeline.service import WatchService

app = typer.Typer(help="renditions - adaptive bitrate ladder transcoder")
console = Console()

DEFAULT_CONFIG = Path("conf/renditions.yaml")


def _load(config_path: Optional[Path]) -> AppConfig:
    """Missing default config is fine; a missing explicit one is an error."""
    if config_path is None or (config_path == DEFAULT_CONFIG and not config_path.exists()):
        return AppConfig()
    return load_config(config_path)


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/red] {message}", soft_wrap=True)
    raise typer.Exit(code=1)


def _subscribe_console(bus: EventBus) -> None:
    bus.subscribe(ExportStarted, lambda e: console.print(f"[cyan]▶[/cyan] {e.task.label} -> {e.task.destination.name}"))
    bus.subscribe(ExportCompleted, lambda e: console.print(f"[green]✓[/green] {e.task.label}"))
    bus.subscribe(ExportFailed, lambda e: console.print(f"[red]✗[/red] {e.task.label}: {e.error_message}"))


def _summary_table(job: TranscodeJob) -> Table:
    table = Table(title=f"Renditions for {job.source.name}")
    table.add_column("Label")
    table.add_column("Size")
    table.add_column("Destination")
    table.add_column("Status")
    for task in job.tasks:
        status = "[green]done[/green]" if task.done else f"[red]{task.error or task.status.value}[/red]"
        table.add_row(task.label, f"{task.entry.width}x{task.entry.height}", str(task.destination), status)
    return table


@app.command()
def transcode(
    source: Path = typer.Argument(..., help="Source video file"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where renditions are written (default: work_dir)"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Override number of concurrent ffmpeg processes"),
    labels: Optional[List[str]] = typer.Option(None, "--label", "-l", help="Rendition label (repeatable)"),
    pool: bool = typer.Option(False, "--pool", help="Refill worker slots as soon as a rendition finishes"),
    publish: bool = typer.Option(False, "--publish/--no-publish", help="Move results to export_dir and write manifests"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Convert one source into its rendition ladder."""
    if not source.exists():
        _fail(f"Source {source} does not exist")
    try:
        config = _load(config_path)
    except (FileNotFoundError, ValidationError) as e:
        _fail(str(e))

    if workers is not None:
        config.general.workers = workers
    if pool:
        config.general.scheduling = "pool"
    if debug:
        config.general.debug = True
    out_dir = output_dir or config.paths.work_dir

    setup_logging(out_dir, debug=config.general.debug, log_path=config.general.log_path)

    bus = EventBus()
    _subscribe_console(bus)
    probe = FFprobeAdapter(config.encoder.ffprobe_bin)
    runner = FFmpegAdapter(bus, encoder=config.encoder, progress=config.progress)

    try:
        job = create_job(source, out_dir, labels or config.general.ladder, probe=probe)
    except ConstructionError as e:
        _fail(str(e))

    if not job.tasks:
        console.print(f"[yellow]No renditions fit {job.details.resolution.width}x{job.details.resolution.height}, nothing to do[/yellow]")
        return

    scheduler = Scheduler(runner, mode=config.general.scheduling, event_bus=bus)
    scheduler.start(job, config.general.workers)

    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>5.1f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        bar = progress.add_task(source.name, total=100)
        for value in poll_progress(job, interval=config.progress.poll_interval_s):
            progress.update(bar, completed=value)
    scheduler.wait()

    console.print(_summary_table(job))

    if publish:
        target = Publisher(config.paths.export_dir).publish(job.report())
        console.print(f"Published to {target}")

    if job.failed_tasks:
        raise typer.Exit(code=1)


@app.command()
def watch(
    watch_dir: Optional[Path] = typer.Argument(None, help="Directory to watch (default: paths.watch_dir)"),
    config_path: Optional[Path] = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Override number of concurrent ffmpeg processes"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Watch a directory and publish renditions for every new video."""
    try:
        config = _load(config_path)
    except (FileNotFoundError, ValidationError) as e:
        _fail(str(e))

    if watch_dir is not None:
        config.paths.watch_dir = watch_dir
    if workers is not None:
        config.general.workers = workers
    if debug:
        config.general.debug = True
    if not config.paths.watch_dir.is_dir():
        _fail(f"Watch directory {config.paths.watch_dir} does not exist")

    setup_logging(config.paths.work_dir, debug=config.general.debug, log_path=config.general.log_path)

    bus = EventBus()
    _subscribe_console(bus)
    service = WatchService(
        config,
        bus,
        probe=FFprobeAdapter(config.encoder.ffprobe_bin),
        runner=FFmpegAdapter(bus, encoder=config.encoder, progress=config.progress),
    )
    watcher = DirectoryWatcher(
        config.paths.watch_dir,
        service.process,
        extensions=config.general.extensions,
        stable_wait=config.watch.stable_wait_s,
        recursive=config.watch.recursive,
    )

    console.print(f"Watching [bold]{config.paths.watch_dir.resolve()}[/bold] (Ctrl+C to stop)")
    try:
        watcher.start()
        watcher.wait()
    finally:
        watcher.stop()
        console.print("Watcher stopped.")


@app.command()
def ladder():
    """Print the resolution ladder."""
    table = Table(title="Resolution ladder")
    for column in ("Label", "Size", "Video", "Audio", "Buffer", "Profile", "Suffix"):
        table.add_column(column)
    for entry in LADDER.values():
        table.add_row(
            entry.label, f"{entry.width}x{entry.height}", entry.video_bitrate,
            entry.audio_bitrate, entry.buffer_size, entry.profile, entry.suffix,
        )
    console.print(table)


if __name__ == "__main__":
    app()
