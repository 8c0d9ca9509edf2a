import concurrent.futures
import logging
import os
from typing import List, Optional
from pydantic import BaseModel, Field
from rich.console import Console
from rich.progress import Progress, BarColumn, TextColumn, MofNCompleteColumn, TimeRemainingColumn
from vconvert.domain.models import VideoFile, ProcessableFile, AnalysisFilter, SortOrder, sort_key
from vconvert.domain.errors import ProbeError
from vconvert.domain.results import (
    AnalysisResult, NeedsConversion, NeedsRemux, NeedsRename, Skip,
    AlreadyConverted, AnalysisFailed, BitrateAboveThreshold, BitrateBelowThreshold,
    DurationAboveThreshold, DurationBelowThreshold, OutputExists,
)
from vconvert.domain.stats import AnalysisStats
from vconvert.domain.events import FileSkipped, DuplicateChecked, AnalysisFinished
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.file_ops import FileOps
from vconvert.pipeline.abort import AbortFlag
from vconvert.pipeline.classifier import analyze_file

logger = logging.getLogger(__name__)

# Existing output counts as the same video when durations differ by at most
# this fraction of the source duration.
DUPLICATE_DURATION_TOLERANCE = 0.10

SKIP_COUNTERS = {
    AlreadyConverted: "skipped_converted",
    BitrateBelowThreshold: "skipped_bitrate_low",
    BitrateAboveThreshold: "skipped_bitrate_high",
    DurationBelowThreshold: "skipped_duration_short",
    DurationAboveThreshold: "skipped_duration_long",
    OutputExists: "skipped_duplicate",
    AnalysisFailed: "analysis_failed",
}


class AnalysisOutput(BaseModel):
    renames: List[ProcessableFile] = Field(default_factory=list)
    remuxes: List[ProcessableFile] = Field(default_factory=list)
    conversions: List[ProcessableFile] = Field(default_factory=list)
    stats: AnalysisStats = Field(default_factory=AnalysisStats)
    aborted: bool = False


class ParallelAnalyzer:
    """Probes and classifies candidates on a thread pool, then buckets them."""

    def __init__(
        self,
        prober,
        event_bus: EventBus,
        file_ops: FileOps,
        abort: AbortFlag,
        analysis_filter: AnalysisFilter,
        sort: SortOrder = SortOrder.NAME,
        threads: Optional[int] = None,
        resolve_duplicates: bool = False,
        dry_run: bool = False,
        console: Optional[Console] = None,
        show_progress: bool = True,
    ):
        self.prober = prober
        self.event_bus = event_bus
        self.file_ops = file_ops
        self.abort = abort
        self.analysis_filter = analysis_filter
        self.sort = sort
        self.threads = threads or os.cpu_count() or 1
        self.resolve_duplicates = resolve_duplicates
        self.dry_run = dry_run
        self.console = console
        self.show_progress = show_progress

    def _analyze(self, file: VideoFile) -> Optional[AnalysisResult]:
        if self.abort.is_set():
            return None
        return analyze_file(file, self.prober, self.analysis_filter)

    def _probe_all(self, files: List[VideoFile]) -> List[Optional[AnalysisResult]]:
        progress = Progress(
            TextColumn("[bold blue]Analyzing"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=self.console,
            disable=not self.show_progress,
            transient=True,
        )
        with progress, concurrent.futures.ThreadPoolExecutor(max_workers=self.threads) as executor:
            task = progress.add_task("analyze", total=len(files))
            futures = [executor.submit(self._analyze, f) for f in files]
            for future in concurrent.futures.as_completed(futures):
                progress.advance(task)
            # Merge in input order regardless of completion order
            return [future.result() for future in futures]

    def run(self, files: List[VideoFile]) -> AnalysisOutput:
        output = AnalysisOutput()
        logger.info(f"Analyzing {len(files)} files with {self.threads} threads")

        for file, result in zip(files, self._probe_all(files)):
            if result is None:
                output.aborted = True
                continue
            self._merge(file, result, output)

        output.remuxes.sort(key=sort_key(self.sort))
        output.conversions.sort(key=sort_key(self.sort))

        stats = output.stats
        logger.info(
            f"Analysis done: rename={stats.to_rename} remux={stats.to_remux} convert={stats.to_convert} "
            f"skipped={stats.total_skipped} failed={stats.analysis_failed}"
        )
        self.event_bus.publish(AnalysisFinished(stats=stats))
        return output

    def _merge(self, file: VideoFile, result: AnalysisResult, output: AnalysisOutput):
        stats = output.stats
        if isinstance(result, NeedsRename):
            output.renames.append(result.item)
            stats.to_rename += 1
        elif isinstance(result, NeedsRemux):
            output.remuxes.append(result.item)
            stats.to_remux += 1
        elif isinstance(result, NeedsConversion):
            output.conversions.append(result.item)
            stats.to_convert += 1
        elif isinstance(result, Skip):
            counter = SKIP_COUNTERS.get(type(result.reason))
            if counter is None:
                raise TypeError(f"Unhandled skip reason: {result.reason!r}")
            setattr(stats, counter, getattr(stats, counter) + 1)
            logger.info(f"SKIP {file.path.name}: {result.reason}")
            self.event_bus.publish(FileSkipped(file=file, reason=result.reason))
            if isinstance(result.reason, OutputExists) and self.resolve_duplicates:
                self._resolve_duplicate(file, result.reason, stats)
        else:
            raise TypeError(f"Unhandled analysis result: {result!r}")

    def _resolve_duplicate(self, file: VideoFile, reason: OutputExists, stats: AnalysisStats):
        """Removes the source when the existing output has a matching duration."""

        def report(removed: bool, message: str):
            self.event_bus.publish(DuplicateChecked(
                file=file, existing=reason.path, removed=removed, message=message))

        try:
            existing = self.prober.get_video_info(reason.path)
        except ProbeError as e:
            logger.warning(f"Cannot verify duplicate {reason.path}: {e}")
            report(False, f"Cannot probe existing output: {e}")
            return

        source_duration = reason.source_duration
        if source_duration <= 0 or existing.duration_seconds <= 0:
            logger.warning(f"Cannot verify duplicate {reason.path}: duration unknown")
            report(False, "Cannot verify duplicate, duration unknown")
            return

        difference = abs(existing.duration_seconds - source_duration)
        if difference > source_duration * DUPLICATE_DURATION_TOLERANCE:
            stats.duplicate_mismatches += 1
            logger.warning(
                f"Duration mismatch for {file.path.name}: source {source_duration:.1f}s, "
                f"existing output {existing.duration_seconds:.1f}s"
            )
            report(False, f"Duration mismatch: {source_duration:.1f}s vs {existing.duration_seconds:.1f}s")
            return

        if self.dry_run:
            report(False, "Would remove source, output already exists")
            return

        try:
            self.file_ops.remove(file.path)
        except OSError as e:
            logger.warning(f"Failed to remove duplicate source {file.path}: {e}")
            report(False, f"Failed to remove source: {e}")
            return
        stats.duplicates_removed += 1
        report(True, "Removed source, output already exists")
