import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional
import typer
import yaml
from pydantic import ValidationError
from ibt.config.loader import load_config
from ibt.config.models import AppConfig
from ibt.domain.errors import ExtractionFailed
from ibt.infrastructure.event_bus import EventBus
from ibt.infrastructure.extraction import ExtractionRunner
from ibt.infrastructure.ffmpeg import FFmpegAdapter
from ibt.infrastructure.ffprobe import FFprobeAdapter
from ibt.infrastructure.fs_watcher import DirectoryWatcher
from ibt.infrastructure.heic import HeicConverterAdapter
from ibt.infrastructure.logging import setup_logging
from ibt.infrastructure.tools import ToolResolver
from ibt.pipeline.classifier import ContentClassifier
from ibt.pipeline.governor import ConcurrencyGovernor
from ibt.pipeline.orchestrator import Orchestrator
from ibt.pipeline.transformer import Transformer
from ibt.ui.reporter import ConsoleReporter

app = typer.Typer(help="IBT (iOS Backup Transformer) - shrinks media in a live iOS backup")


def _load(config_path: Optional[Path], debug: bool) -> AppConfig:
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValidationError, yaml.YAMLError) as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    if debug:
        config.general.debug = True
    return config


def build_orchestrator(config: AppConfig, bus: EventBus, resolver: ToolResolver) -> Orchestrator:
    tools = config.tools
    transformer = Transformer(
        config=config,
        classifier=ContentClassifier(),
        governor=ConcurrencyGovernor(config.pools),
        heic_adapter=HeicConverterAdapter(resolver, tools.heic_converter, tools.heic_timeout_s),
        ffmpeg_adapter=FFmpegAdapter(resolver, tools.ffmpeg, tools.frame_timeout_s),
        ffprobe_adapter=FFprobeAdapter(resolver, tools.ffprobe, tools.probe_timeout_s),
    )
    return Orchestrator(config=config, event_bus=bus, transformer=transformer)


@contextmanager
def _on_termination(handler: Callable[[], None]) -> Iterator[None]:
    """Routes SIGINT/SIGTERM to ``handler`` for the duration of the block."""
    def _handle(signum, frame):
        handler()

    previous = {sig: signal.signal(sig, _handle) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


@app.command()
def watch(
    directory: Path = typer.Argument(..., help="Backup directory to watch"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
    log_path: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file"),
    scan_existing: Optional[bool] = typer.Option(
        None, "--scan-existing/--no-scan-existing", help="Process files already present at start"
    ),
):
    """Watch a directory and convert media files as they appear (until Ctrl+C)."""
    config = _load(config_path, debug)
    if scan_existing is not None:
        config.watch.scan_existing = scan_existing
    if not directory.is_dir():
        typer.secho(f"Error: directory does not exist: {directory}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    logger = setup_logging(log_path, debug=config.general.debug)
    try:
        bus = EventBus()
        ConsoleReporter(bus, show_skipped=config.general.debug)
        resolver = ToolResolver(library_dir=Path(config.tools.library_dir))
        orchestrator = build_orchestrator(config, bus, resolver)
        watcher = DirectoryWatcher(directory, orchestrator.submit, config.watch)

        stop_event = threading.Event()
        typer.secho(f"Watching {directory} (Ctrl+C to stop)", fg=typer.colors.CYAN)
        with _on_termination(stop_event.set):
            total = orchestrator.run_watch(watcher, stop_event)
        logger.info(f"Watch stopped. Total files processed: {total}")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def run(
    backup_dir: Path = typer.Option(..., "--backup-dir", "-b", help="Backup directory (<parent>/<device id>)"),
    ios_backup: Optional[str] = typer.Option(None, "--ios-backup", help="Path or name of the extraction tool"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show all extraction output"),
    log_path: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs and tool output to this file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Run the backup extraction tool and convert media as files are saved."""
    config = _load(config_path, debug)
    if not backup_dir.parent.is_dir():
        typer.secho(f"Error: parent of backup directory does not exist: {backup_dir.parent}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    logger = setup_logging(log_path, debug=config.general.debug or verbose)
    try:
        bus = EventBus()
        ConsoleReporter(bus, show_skipped=verbose)
        resolver = ToolResolver(library_dir=Path(config.tools.library_dir))
        orchestrator = build_orchestrator(config, bus, resolver)
        runner = ExtractionRunner(
            backup_dir,
            orchestrator.submit,
            resolver,
            config.extraction,
            executable=ios_backup,
            verbose=verbose,
        )
        with _on_termination(runner.stop):
            total = orchestrator.run_extraction(runner)
        logger.info(f"Backup runner stopped. Total files processed: {total}")
    except ExtractionFailed as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
