from rich.console import Console
from rich.markup import escape
from vconvert.infrastructure.event_bus import EventBus
from vconvert.domain.results import Converted, OutputExists
from vconvert.domain.events import (
    DiscoveryStarted, DiscoveryFinished, FileSkipped, DuplicateChecked,
    RenameApplied, QueueCleaned, JobStarted, JobCompleted, JobFailed,
    ActionMessage, LimitReached, RunFinished, AnalysisFinished,
)
from vconvert.ui.formatting import format_duration, format_bitrate
from vconvert.ui.report import print_analysis_summary, print_run_summary

LEVEL_STYLES = {
    "info": "cyan",
    "warning": "yellow",
    "error": "red",
}


class UIManager:
    """Subscribes to EventBus and prints one line per event to the console."""

    def __init__(self, bus: EventBus, console: Console, verbose: bool = False):
        self.bus = bus
        self.console = console
        self.verbose = verbose
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryStarted, self.on_discovery_started)
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(FileSkipped, self.on_file_skipped)
        self.bus.subscribe(AnalysisFinished, self.on_analysis_finished)
        self.bus.subscribe(DuplicateChecked, self.on_duplicate_checked)
        self.bus.subscribe(RenameApplied, self.on_rename_applied)
        self.bus.subscribe(QueueCleaned, self.on_queue_cleaned)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(ActionMessage, self.on_action_message)
        self.bus.subscribe(LimitReached, self.on_limit_reached)
        self.bus.subscribe(RunFinished, self.on_run_finished)

    def on_discovery_started(self, event: DiscoveryStarted):
        self.console.print(f"[bold]Scanning[/bold] {escape(str(event.directory))}")

    def on_discovery_finished(self, event: DiscoveryFinished):
        self.console.print(f"Found [bold]{event.files_found}[/bold] candidate files")

    def on_file_skipped(self, event: FileSkipped):
        # Existing outputs are always shown, other skips only in verbose mode
        if self.verbose or isinstance(event.reason, OutputExists):
            self.console.print(f"[dim]Skip {escape(str(event.file.path))}: {escape(str(event.reason))}[/dim]")

    def on_analysis_finished(self, event: AnalysisFinished):
        print_analysis_summary(self.console, event.stats)

    def on_duplicate_checked(self, event: DuplicateChecked):
        style = "green" if event.removed else "yellow"
        self.console.print(f"[{style}]Duplicate {escape(event.file.path.name)}: {escape(event.message)}[/{style}]")

    def on_rename_applied(self, event: RenameApplied):
        prefix = "Would rename" if event.dry_run else "Renamed"
        self.console.print(
            f"[cyan]{prefix}[/cyan] {escape(event.source.name)} -> {escape(event.target.name)}"
        )

    def on_queue_cleaned(self, event: QueueCleaned):
        if event.removed:
            self.console.print(f"[yellow]Removed {event.removed} missing files from queue[/yellow]")

    def on_job_started(self, event: JobStarted):
        item = event.item
        info = item.info
        details = f"{info.codec or '?'} {info.width}x{info.height} {format_bitrate(info.bitrate_kbps)}"
        if info.duration_seconds:
            details += f" {format_duration(info.duration_seconds)}"
        if event.quality_level is not None:
            details += f" cq={event.quality_level}"
        self.console.print(
            f"[bold magenta]{event.index}[/bold magenta] {event.operation.value.capitalize()}: "
            f"{escape(str(item.file.path))} [dim]({details})[/dim]"
        )

    def on_job_completed(self, event: JobCompleted):
        result = event.result
        message = f"[green]Done[/green] in {format_duration(result.elapsed)}"
        if isinstance(result, Converted) and result.stats.converted_size:
            message += f": {escape(str(result.stats))}"
        self.console.print(message)

    def on_job_failed(self, event: JobFailed):
        self.console.print(
            f"[bold red]Failed[/bold red] {escape(event.item.file.path.name)}: {escape(event.error_message)}"
        )

    def on_action_message(self, event: ActionMessage):
        style = LEVEL_STYLES.get(event.level, "yellow")
        self.console.print(f"[{style}]{escape(event.message)}[/{style}]")

    def on_limit_reached(self, event: LimitReached):
        self.console.print(f"[yellow]Limiting this run to {event.limit} files[/yellow]")

    def on_run_finished(self, event: RunFinished):
        if event.aborted:
            self.console.print("[bold yellow]Aborted, unfinished files stay in the queue[/bold yellow]")
        print_run_summary(self.console, event.stats)
