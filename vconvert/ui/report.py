"""Rich renderings of run summaries and queue contents."""
from typing import List, Optional
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.markup import escape
from vconvert.domain.stats import AnalysisStats, RunStats
from vconvert.infrastructure.database import PendingFile, QueueStats, ExtensionStats
from vconvert.ui.formatting import format_size, format_duration, format_bitrate


def _counter_table() -> Table:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Label")
    table.add_column("Count", justify="right", style="bold")
    return table


def print_analysis_summary(console: Console, stats: AnalysisStats):
    table = _counter_table()
    table.add_row("[cyan]To rename[/cyan]", str(stats.to_rename))
    table.add_row("[cyan]To remux[/cyan]", str(stats.to_remux))
    table.add_row("[cyan]To convert[/cyan]", str(stats.to_convert))
    rows = [
        ("Already converted", stats.skipped_converted),
        ("Bitrate too low", stats.skipped_bitrate_low),
        ("Bitrate too high", stats.skipped_bitrate_high),
        ("Too short", stats.skipped_duration_short),
        ("Too long", stats.skipped_duration_long),
        ("Output exists", stats.skipped_duplicate),
        ("Duplicates removed", stats.duplicates_removed),
        ("Duplicate mismatches", stats.duplicate_mismatches),
    ]
    for label, count in rows:
        if count:
            table.add_row(f"[dim]{label}[/dim]", str(count))
    if stats.analysis_failed:
        table.add_row("[red]Analysis failed[/red]", str(stats.analysis_failed))
    console.print(Panel(table, title="ANALYSIS", border_style="cyan", expand=False))


def print_run_summary(console: Console, stats: RunStats):
    table = _counter_table()
    table.add_row("[green]Renamed[/green]", str(stats.files_renamed))
    table.add_row("[green]Remuxed[/green]", str(stats.files_remuxed))
    table.add_row("[green]Converted[/green]", str(stats.files_converted))
    if stats.files_failed:
        table.add_row("[red]Failed[/red]", str(stats.files_failed))
    if stats.files_converted:
        table.add_row("Original size", format_size(stats.total_original_size))
        table.add_row("Converted size", format_size(stats.total_converted_size))
        table.add_row("Space saved", format_size(stats.space_saved))
    table.add_row("Time", format_duration(stats.total_seconds))
    console.print(Panel(table, title="SUMMARY", border_style="green", expand=False))


def print_queue(
    console: Console,
    records: List[PendingFile],
    stats: QueueStats,
    display_limit: Optional[int] = None,
):
    """Lists queued files; ``display_limit`` of None or 0 shows every row."""
    if not records:
        console.print("[yellow]Queue is empty[/yellow]")
        return

    shown = records[:display_limit] if display_limit else records
    table = Table(title="PENDING FILES", header_style="bold cyan")
    table.add_column("Action", style="magenta")
    table.add_column("File", no_wrap=True, overflow="ellipsis")
    table.add_column("Codec", style="cyan")
    table.add_column("Resolution", justify="right")
    table.add_column("Bitrate", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Size", justify="right")
    for record in shown:
        table.add_row(
            record.action.value,
            escape(str(record.full_path)),
            record.codec,
            f"{record.width}x{record.height}",
            format_bitrate(record.bitrate_kbps),
            format_duration(record.duration),
            format_size(record.size_bytes),
        )
    console.print(table)
    if len(shown) < len(records):
        console.print(f"[dim]... and {len(records) - len(shown)} more[/dim]")
    console.print(
        f"Total: [bold]{stats.total_files}[/bold] files "
        f"({stats.convert_count} convert, {stats.remux_count} remux), {format_size(stats.total_size)}"
    )


def print_extension_stats(console: Console, rows: List[ExtensionStats]):
    if not rows:
        console.print("[yellow]Queue is empty[/yellow]")
        return
    table = Table(title="EXTENSIONS", header_style="bold cyan")
    table.add_column("Extension", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Convert", justify="right")
    table.add_column("Remux", justify="right")
    table.add_column("Size", justify="right")
    for row in rows:
        table.add_row(
            row.extension,
            str(row.total),
            str(row.convert_count),
            str(row.remux_count),
            format_size(row.total_size),
        )
    console.print(table)
