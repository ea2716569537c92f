import threading
from datetime import datetime
from typing import Optional
from rich.console import Console
from rich.markup import escape
from ibt.domain.events import (
    AllJobsIdle,
    ExtractionFinished,
    ExtractionStarted,
    JobCompleted,
    JobFailed,
    JobSkipped,
    ProcessingFinished,
    ShutdownRequested,
)
from ibt.domain.models import JobStatus, TransformOutcome
from ibt.infrastructure.event_bus import EventBus

STATUS_STYLES = {
    JobStatus.CONVERTED: "green",
    JobStatus.PRESERVED: "cyan",
    JobStatus.DISPOSED: "magenta",
    JobStatus.SKIPPED: "yellow",
    JobStatus.VANISHED: "dim",
    JobStatus.FAILED: "bold red",
}


def format_size(size: Optional[int]) -> str:
    if size is None:
        return "-"
    value = float(size)
    if value < 1024:
        return f"{size} B"
    for unit in ("KB", "MB"):
        value /= 1024
        if value < 1024:
            return f"{value:.1f} {unit}"
    value /= 1024
    return f"{value:.1f} GB"


class ConsoleReporter:
    """Subscribes to EventBus and prints one line per finished job plus a summary."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None, show_skipped: bool = False):
        self.bus = bus
        self.console = console or Console()
        self.show_skipped = show_skipped
        self.counts = {status: 0 for status in JobStatus}
        self._lock = threading.Lock()
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobSkipped, self.on_job_skipped)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(AllJobsIdle, self.on_all_jobs_idle)
        self.bus.subscribe(ExtractionStarted, self.on_extraction_started)
        self.bus.subscribe(ExtractionFinished, self.on_extraction_finished)
        self.bus.subscribe(ShutdownRequested, self.on_shutdown_requested)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def _print_outcome(self, outcome: TransformOutcome):
        style = STATUS_STYLES.get(outcome.status, "white")
        line = (
            f"[{datetime.now():%H:%M:%S}] [{style}]{outcome.status.value:<9}[/] "
            f"{escape(outcome.path.name)} ({outcome.content_type})"
        )
        if outcome.status == JobStatus.CONVERTED:
            line += f" -> {format_size(outcome.output_size_bytes)}"
        if outcome.message and outcome.status != JobStatus.CONVERTED:
            line += f" [dim]{escape(outcome.message)}[/]"
        if outcome.duration_seconds is not None:
            line += f" [dim]{outcome.duration_seconds:.2f}s[/]"
        self.console.print(line, highlight=False)

    def _count(self, status: JobStatus):
        with self._lock:
            self.counts[status] += 1

    def on_job_completed(self, event: JobCompleted):
        self._count(event.outcome.status)
        self._print_outcome(event.outcome)

    def on_job_skipped(self, event: JobSkipped):
        self._count(event.outcome.status)
        if self.show_skipped:
            self._print_outcome(event.outcome)

    def on_job_failed(self, event: JobFailed):
        self._count(JobStatus.FAILED)
        if event.outcome is not None:
            self._print_outcome(event.outcome)
        else:
            self.console.print(
                f"[{datetime.now():%H:%M:%S}] [bold red]FAILED[/]    {escape(event.file.path.name)}: {escape(event.error_message)}",
                highlight=False,
            )

    def on_all_jobs_idle(self, event: AllJobsIdle):
        self.console.print(f"[dim]Idle. Total files processed: {event.total}[/]", highlight=False)

    def on_extraction_started(self, event: ExtractionStarted):
        self.console.print(f"[bold]Backing up to[/] {escape(str(event.backup_dir))}", highlight=False)

    def on_extraction_finished(self, event: ExtractionFinished):
        self.console.print(
            f"[bold]Extraction finished[/] (exit code {event.returncode}, {event.files_reported} files reported)",
            highlight=False,
        )

    def on_shutdown_requested(self, event: ShutdownRequested):
        self.console.print("[yellow]Shutting down, waiting for active jobs...[/]")

    def on_processing_finished(self, event: ProcessingFinished):
        with self._lock:
            parts = [f"{status.value.lower()}={count}" for status, count in self.counts.items() if count]
        summary = ", ".join(parts) if parts else "nothing to do"
        self.console.print(f"[bold green]Done.[/] Total files processed: {event.total} ({summary})")
