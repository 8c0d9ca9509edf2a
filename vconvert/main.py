import logging
from pathlib import Path
from typing import List, Optional
import typer
from rich.console import Console
from vconvert.config.loader import load_config
from vconvert.config.models import AppConfig
from vconvert.domain.errors import VConvertError
from vconvert.domain.models import SortOrder
from vconvert.infrastructure.logging import setup_logging
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.database import PendingQueue
from vconvert.infrastructure.file_scanner import FileScanner
from vconvert.infrastructure.file_ops import FileOps
from vconvert.infrastructure.ffprobe import FFprobeAdapter
from vconvert.infrastructure.ffmpeg import FFmpegAdapter
from vconvert.pipeline.abort import AbortFlag, install_signal_handlers, FORCED_EXIT_CODE
from vconvert.pipeline.orchestrator import Orchestrator
from vconvert.ui.manager import UIManager
from vconvert.ui.report import print_queue, print_extension_stats

app = typer.Typer(help="vconvert - batch convert videos to HEVC in MP4 with a resumable queue")

logger = logging.getLogger(__name__)


def apply_overrides(config: AppConfig, **overrides) -> AppConfig:
    """Returns a copy of ``config`` with every non-None override applied to ``general``.

    Flags are passed as None when not given so they never clear a value from
    the config file.
    """
    updates = {key: value for key, value in overrides.items() if value is not None}
    general = config.general.model_validate({**config.general.model_dump(), **updates})
    return config.model_copy(update={"general": general})


def _flag(value: bool) -> Optional[bool]:
    return True if value else None


@app.command()
def convert(
    path: Optional[Path] = typer.Argument(None, help="Directory or file to process (default: current directory)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    convert_all: bool = typer.Option(False, "--all", "-a", help="Process all known video extensions"),
    convert_other: bool = typer.Option(False, "--other", "-o", help="Process only non-mp4 extensions"),
    extension: List[str] = typer.Option([], "--extension", "-t", help="Extension to include (repeatable)"),
    include: List[str] = typer.Option([], "--include", "-n", help="Only file names containing this (repeatable)"),
    exclude: List[str] = typer.Option([], "--exclude", "-e", help="Skip file names containing this (repeatable)"),
    recurse: bool = typer.Option(False, "--recurse", "-r", help="Descend into subdirectories"),
    bitrate: Optional[int] = typer.Option(None, "--bitrate", "-b", help="Minimum bitrate in kbps to convert"),
    max_bitrate: Optional[int] = typer.Option(None, "--max-bitrate", "-B", help="Maximum bitrate in kbps"),
    min_duration: Optional[float] = typer.Option(None, "--min-duration", "-u", help="Minimum duration in seconds"),
    max_duration: Optional[float] = typer.Option(None, "--max-duration", "-U", help="Maximum duration in seconds"),
    count: Optional[int] = typer.Option(None, "--count", "-N", help="Process at most this many files"),
    sort: Optional[SortOrder] = typer.Option(None, "--sort", "-s", case_sensitive=False, help="Processing order"),
    delete: bool = typer.Option(False, "--delete", "-d", help="Delete sources instead of moving them to trash"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing output files"),
    dry_run: bool = typer.Option(False, "--print", "-p", help="Only print what would be done"),
    skip_convert: bool = typer.Option(False, "--skip-convert", "-k", help="Do not run conversions"),
    skip_remux: bool = typer.Option(False, "--skip-remux", "-m", help="Do not run remuxes"),
    resolve_duplicates: bool = typer.Option(False, "--resolve-duplicates", help="Remove sources whose output already exists with matching duration"),
    threads: Optional[int] = typer.Option(None, "--threads", help="Analysis worker threads"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every skipped file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    from_db: bool = typer.Option(False, "--from-db", "-D", help="Process files from the queue without scanning"),
    clear_db: bool = typer.Option(False, "--clear-db", "-C", help="Remove all queued files and exit"),
    show_db: bool = typer.Option(False, "--show-db", "-S", help="List queued files and exit"),
    list_extensions: bool = typer.Option(False, "--list-extensions", "-E", help="Show queued file counts per extension and exit"),
    display_limit: Optional[int] = typer.Option(None, "--display-limit", "-L", help="Rows shown by --show-db (0 = all)"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Queue database path"),
):
    """Convert videos to HEVC in an MP4 container."""
    console = Console()

    try:
        config = apply_overrides(
            load_config(config_path),
            convert_all=_flag(convert_all),
            convert_other=_flag(convert_other),
            extensions=extension or None,
            include=include or None,
            exclude=exclude or None,
            recurse=_flag(recurse),
            min_bitrate=bitrate,
            max_bitrate=max_bitrate,
            min_duration=min_duration,
            max_duration=max_duration,
            count=count,
            sort=sort,
            delete=_flag(delete),
            overwrite=_flag(force),
            dry_run=_flag(dry_run),
            skip_convert=_flag(skip_convert),
            skip_remux=_flag(skip_remux),
            resolve_duplicates=_flag(resolve_duplicates),
            threads=threads,
            verbose=_flag(verbose),
            debug=_flag(debug),
            display_limit=display_limit,
            db_path=db_path,
        )
    except (VConvertError, ValueError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    general = config.general
    setup_logging(general.log_dir, debug=general.debug)
    logger.info(f"vconvert started: path={path}, db={general.db_path}, dry_run={general.dry_run}")
    logger.info(
        f"Config: min_bitrate={general.min_bitrate}, extensions={config.resolved_extensions()}, "
        f"sort={general.sort.value}, count={general.count}"
    )

    try:
        with PendingQueue(general.db_path) as queue:
            if clear_db:
                removed = queue.clear()
                console.print(f"Removed [bold]{removed}[/bold] files from queue")
                return
            if show_db:
                records = queue.get_pending(config.pending_filter())
                print_queue(console, records, queue.stats(), general.display_limit)
                return
            if list_extensions:
                print_extension_stats(console, queue.extension_stats())
                return

            root = None
            if not from_db:
                root = (path or Path.cwd()).expanduser().resolve()
                if not root.exists():
                    typer.secho(f"Error: {root} does not exist.", fg=typer.colors.RED, err=True)
                    raise typer.Exit(code=1)

            bus = EventBus()
            UIManager(bus, console, verbose=general.verbose)
            abort = AbortFlag()
            install_signal_handlers(
                abort,
                on_first=lambda: console.print(
                    "[bold yellow]Stopping after the current file (Ctrl+C again to quit now)[/bold yellow]"
                ),
            )

            orchestrator = Orchestrator(
                config=config,
                event_bus=bus,
                queue=queue,
                file_scanner=FileScanner(
                    extensions=config.resolved_extensions(),
                    include=general.include,
                    exclude=general.exclude,
                    recurse=general.recurse,
                ),
                prober=FFprobeAdapter(),
                encoder=FFmpegAdapter(),
                file_ops=FileOps(delete=general.delete),
                abort=abort,
                console=console,
            )

            if from_db:
                orchestrator.run_from_queue()
            else:
                orchestrator.run(root)

    except VConvertError as e:
        logger.error(f"Fatal: {e}")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except KeyboardInterrupt:
        typer.echo("\nInterrupted by user")
        raise typer.Exit(code=FORCED_EXIT_CODE)


if __name__ == "__main__":
    app()
