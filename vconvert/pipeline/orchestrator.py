import logging
from pathlib import Path
from typing import List, Optional, Tuple
from rich.console import Console
from vconvert.config.models import AppConfig
from vconvert.domain.models import ProcessableFile, PendingAction, EncodeOperation
from vconvert.domain.results import Failed, ProcessResult
from vconvert.domain.stats import RunStats
from vconvert.domain.events import (
    DiscoveryStarted, DiscoveryFinished, RenameApplied, QueueCleaned,
    ActionMessage, LimitReached, RunFinished,
)
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.database import PendingQueue
from vconvert.infrastructure.file_scanner import FileScanner
from vconvert.infrastructure.file_ops import FileOps
from vconvert.pipeline.abort import AbortFlag
from vconvert.pipeline.analyzer import ParallelAnalyzer
from vconvert.pipeline.engine import ExecutionEngine

logger = logging.getLogger(__name__)


class Orchestrator:
    """Drives a fresh scan or a resume from the queue through to execution."""

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        queue: PendingQueue,
        file_scanner: FileScanner,
        prober,
        encoder,
        file_ops: FileOps,
        abort: AbortFlag,
        console: Optional[Console] = None,
        show_progress: bool = True,
    ):
        self.config = config
        self.event_bus = event_bus
        self.queue = queue
        self.file_scanner = file_scanner
        self.prober = prober
        self.file_ops = file_ops
        self.abort = abort

        general = config.general
        self.analyzer = ParallelAnalyzer(
            prober=prober,
            event_bus=event_bus,
            file_ops=file_ops,
            abort=abort,
            analysis_filter=config.analysis_filter(),
            sort=general.sort,
            threads=general.threads,
            resolve_duplicates=general.resolve_duplicates,
            dry_run=general.dry_run,
            console=console,
            show_progress=show_progress,
        )
        self.engine = ExecutionEngine(
            encoder=encoder,
            prober=prober,
            file_ops=file_ops,
            event_bus=event_bus,
            dry_run=general.dry_run,
        )

    def run(self, input_path: Path) -> RunStats:
        """Fresh scan: discover, analyze, rename, enqueue, execute."""
        general = self.config.general
        self.event_bus.publish(DiscoveryStarted(directory=input_path))
        files = self.file_scanner.scan(input_path)
        self.event_bus.publish(DiscoveryFinished(files_found=len(files)))

        analysis = self.analyzer.run(files)
        stats = RunStats()

        self._apply_renames(analysis.renames, stats)

        for item in analysis.remuxes:
            self.queue.upsert(item.file.path, item.file.extension, item.info, PendingAction.REMUX)
        for item in analysis.conversions:
            self.queue.upsert(item.file.path, item.file.extension, item.info, PendingAction.CONVERT)
        logger.info(f"Queued {len(analysis.remuxes)} remux and {len(analysis.conversions)} convert jobs")

        remuxes = [] if general.skip_remux else analysis.remuxes
        conversions = [] if general.skip_convert else analysis.conversions
        remuxes, conversions = self._apply_limit(remuxes, conversions, general.count)
        aborted = analysis.aborted or self._execute(remuxes, conversions, stats)
        return self._finish(stats, aborted)

    def run_from_queue(self) -> RunStats:
        """Resume: execute what the queue still holds, trusting the cached metadata."""
        if not self.config.general.dry_run:
            removed = self.queue.remove_missing()
            self.event_bus.publish(QueueCleaned(removed=removed))

        records = self.queue.get_pending(self.config.pending_filter())
        remuxes = [r.to_processable() for r in records if r.action == PendingAction.REMUX]
        conversions = [r.to_processable() for r in records if r.action == PendingAction.CONVERT]
        logger.info(f"Loaded {len(remuxes)} remux and {len(conversions)} convert jobs from queue")

        stats = RunStats()
        aborted = self._execute(remuxes, conversions, stats)
        return self._finish(stats, aborted)

    def _apply_renames(self, renames: List[ProcessableFile], stats: RunStats):
        general = self.config.general
        for item in renames:
            if self.abort.is_set():
                break
            source, target = item.file.path, item.output_path
            if target.exists() and not general.overwrite:
                self.event_bus.publish(ActionMessage(
                    message=f"Not renaming {source.name}: {target.name} already exists"))
                continue
            if not general.dry_run:
                try:
                    self.file_ops.rename(source, target)
                except OSError as e:
                    logger.warning(f"Rename failed for {source}: {e}")
                    self.event_bus.publish(ActionMessage(message=f"Rename failed for {source.name}: {e}"))
                    continue
            stats.files_renamed += 1
            self.event_bus.publish(RenameApplied(source=source, target=target, dry_run=general.dry_run))

    def _apply_limit(
        self,
        remuxes: List[ProcessableFile],
        conversions: List[ProcessableFile],
        limit: Optional[int],
    ) -> Tuple[List[ProcessableFile], List[ProcessableFile]]:
        """Caps the total job count, filling with remuxes first."""
        if limit is None or len(remuxes) + len(conversions) <= limit:
            return remuxes, conversions
        limited_remuxes = remuxes[:limit]
        limited_conversions = conversions[:limit - len(limited_remuxes)]
        self.event_bus.publish(LimitReached(limit=limit))
        return limited_remuxes, limited_conversions

    def _execute(self, remuxes: List[ProcessableFile], conversions: List[ProcessableFile], stats: RunStats) -> bool:
        general = self.config.general

        def on_result(item: ProcessableFile, result: ProcessResult):
            stats.add_result(result)
            if general.dry_run:
                return
            if result.succeeded or (isinstance(result, Failed) and result.source_missing):
                self.queue.remove(item.file.path)

        if remuxes and not general.skip_remux:
            if self.engine.run_batch(remuxes, EncodeOperation.REMUX, self.abort, on_result):
                return True
        if conversions and not general.skip_convert:
            return self.engine.run_batch(conversions, EncodeOperation.CONVERT, self.abort, on_result)
        return False

    def _finish(self, stats: RunStats, aborted: bool) -> RunStats:
        logger.info(
            f"Run finished: renamed={stats.files_renamed} remuxed={stats.files_remuxed} "
            f"converted={stats.files_converted} failed={stats.files_failed} aborted={aborted}"
        )
        self.event_bus.publish(RunFinished(stats=stats, aborted=aborted))
        return stats
