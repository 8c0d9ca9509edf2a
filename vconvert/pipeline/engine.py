import logging
import time
from pathlib import Path
from typing import Callable, List, Optional
from vconvert.domain.models import ProcessableFile, EncodeSpec, EncodeOperation, VideoInfo
from vconvert.domain.errors import ProbeError, EncoderError
from vconvert.domain.results import ProcessResult, Converted, Remuxed, Failed
from vconvert.domain.stats import ConversionStats
from vconvert.domain.events import JobStarted, JobCompleted, JobFailed, ActionMessage
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.file_ops import FileOps
from vconvert.pipeline.abort import AbortFlag

logger = logging.getLogger(__name__)

# Output shorter than this fraction of the source is treated as truncated.
MIN_DURATION_RATIO = 0.85

# Applied when the first conversion came out larger than the source.
RECONVERT_QUALITY_STEP = 2

# Source containers whose audio can be stream-copied into mp4.
AUDIO_COPY_EXTENSIONS = ("mp4", "mkv")

ResultCallback = Callable[[ProcessableFile, ProcessResult], None]


class ExecutionEngine:
    """Runs remux and convert jobs one at a time with fallbacks and validation.

    Every attempt that fails has its partial output removed before the next
    one starts. The source is disposed of only after the output is validated.
    """

    def __init__(
        self,
        encoder,
        prober,
        file_ops: FileOps,
        event_bus: EventBus,
        dry_run: bool = False,
    ):
        self.encoder = encoder
        self.prober = prober
        self.file_ops = file_ops
        self.event_bus = event_bus
        self.dry_run = dry_run

    def _notify(self, message: str, level: str = "warning"):
        getattr(logger, level, logger.warning)(message)
        self.event_bus.publish(ActionMessage(message=message, level=level))

    def _remove_output(self, path: Path):
        try:
            if path.exists():
                path.unlink()
                logger.debug(f"Removed partial output {path}")
        except OSError as e:
            logger.warning(f"Failed to remove partial output {path}: {e}")

    def _dispose_source(self, item: ProcessableFile):
        try:
            self.file_ops.remove(item.file.path)
        except OSError as e:
            self._notify(f"Failed to remove source {item.file.path}: {e}")

    def _dry_run(self, spec: EncodeSpec):
        logger.info(f"DRY RUN: {' '.join(self.encoder.build_command(spec))}")

    def remux(self, item: ProcessableFile) -> ProcessResult:
        """Copies streams into mp4; retries once with AAC audio."""
        spec = EncodeSpec(
            operation=EncodeOperation.REMUX,
            input_path=item.file.path,
            output_path=item.output_path,
            copy_audio=True,
        )
        if self.dry_run:
            self._dry_run(spec)
            return Remuxed()

        code = self.encoder.encode(spec)
        if code != 0:
            self._remove_output(item.output_path)
            self._notify(f"Remux of {item.file.path.name} failed (code {code}), retrying with AAC audio")
            spec = spec.model_copy(update={"copy_audio": False})
            code = self.encoder.encode(spec)
            if code != 0:
                self._remove_output(item.output_path)
                return Failed(error=f"Remux failed with exit code {code}")

        output = item.output_path
        if not output.exists() or output.stat().st_size == 0:
            self._remove_output(output)
            return Failed(error="Remux produced no output")

        self._dispose_source(item)
        return Remuxed()

    def convert(self, item: ProcessableFile) -> ProcessResult:
        """HEVC encode with CUDA filters, software-filter fallback, size and duration checks."""
        info = item.info
        quality = info.quality_level()
        spec = EncodeSpec(
            operation=EncodeOperation.CONVERT,
            input_path=item.file.path,
            output_path=item.output_path,
            quality_level=quality,
            copy_audio=item.file.extension in AUDIO_COPY_EXTENSIONS,
            hw_filters=True,
        )
        if self.dry_run:
            self._dry_run(spec)
            return Converted(stats=ConversionStats(
                original_size=info.size_bytes,
                original_bitrate_kbps=info.bitrate_kbps,
                converted_size=0,
                converted_bitrate_kbps=0,
            ))

        code = self.encoder.encode(spec)
        if code != 0:
            self._remove_output(item.output_path)
            self._notify(
                f"Conversion of {item.file.path.name} failed (code {code}), retrying without CUDA filters"
            )
            spec = spec.model_copy(update={"hw_filters": False})
            code = self.encoder.encode(spec)
            if code != 0:
                self._remove_output(item.output_path)
                return Failed(error=f"Conversion failed with exit code {code}")

        output_info = self.prober.get_video_info(item.output_path)

        if output_info.size_bytes > info.size_bytes:
            self._remove_output(item.output_path)
            retry_quality = quality + RECONVERT_QUALITY_STEP
            self._notify(
                f"Output of {item.file.path.name} is larger than source, "
                f"reconverting at quality {retry_quality}"
            )
            spec = spec.model_copy(update={"quality_level": retry_quality})
            code = self.encoder.encode(spec)
            if code != 0:
                self._remove_output(item.output_path)
                return Failed(error=f"Reconversion failed with exit code {code}")
            output_info = self.prober.get_video_info(item.output_path)
            if output_info.size_bytes > info.size_bytes:
                self._notify(f"Output of {item.file.path.name} is still larger than source, keeping it")

        failure = self._validate_duration(info, output_info)
        if failure is not None:
            self._remove_output(item.output_path)
            return failure

        self._dispose_source(item)
        return Converted(stats=ConversionStats(
            original_size=info.size_bytes,
            original_bitrate_kbps=info.bitrate_kbps,
            converted_size=output_info.size_bytes,
            converted_bitrate_kbps=output_info.bitrate_kbps,
        ))

    def _validate_duration(self, source: VideoInfo, output: VideoInfo) -> Optional[Failed]:
        if source.duration_seconds <= 0:
            return None
        if output.duration_seconds < source.duration_seconds * MIN_DURATION_RATIO:
            return Failed(error=(
                f"Output duration {output.duration_seconds:.1f}s is below "
                f"{MIN_DURATION_RATIO:.0%} of source duration {source.duration_seconds:.1f}s"
            ))
        return None

    def process(self, item: ProcessableFile, operation: EncodeOperation, index: str = "") -> ProcessResult:
        """Runs one job. Never raises for per-file errors."""
        start = time.monotonic()
        quality = item.info.quality_level() if operation == EncodeOperation.CONVERT else None
        self.event_bus.publish(JobStarted(item=item, operation=operation, index=index, quality_level=quality))
        logger.info(f"JOB_START: {operation.value} {item.file.path}")

        if not item.file.path.exists():
            result: ProcessResult = Failed(error="Source file no longer exists", source_missing=True)
        else:
            try:
                if operation == EncodeOperation.REMUX:
                    result = self.remux(item)
                elif operation == EncodeOperation.CONVERT:
                    result = self.convert(item)
                else:
                    raise TypeError(f"Unhandled operation: {operation!r}")
            except (ProbeError, EncoderError) as e:
                self._remove_output(item.output_path)
                result = Failed(error=str(e))

        result.elapsed = time.monotonic() - start

        if isinstance(result, Failed):
            logger.error(f"JOB_FAILED: {item.file.path}: {result.error}")
            self.event_bus.publish(JobFailed(
                item=item, operation=operation, index=index, error_message=result.error))
        else:
            logger.info(f"JOB_DONE: {item.file.path} in {result.elapsed:.1f}s")
            self.event_bus.publish(JobCompleted(item=item, operation=operation, index=index, result=result))
        return result

    def run_batch(
        self,
        items: List[ProcessableFile],
        operation: EncodeOperation,
        abort: AbortFlag,
        on_result: Optional[ResultCallback] = None,
    ) -> bool:
        """Processes items in order. Returns True if stopped by the abort flag.

        The flag is checked before each file; a file in progress always finishes.
        """
        total = len(items)
        for number, item in enumerate(items, start=1):
            if abort.is_set():
                logger.info(f"Abort requested, {total - number + 1} {operation.value} jobs left")
                return True
            result = self.process(item, operation, index=f"{number}/{total}")
            if on_result is not None:
                on_result(item, result)
        return False
