import logging
from pathlib import Path
from typing import Callable, Union
from vconvert.domain.models import VideoFile, VideoInfo, ProcessableFile, AnalysisFilter
from vconvert.domain.errors import ProbeError
from vconvert.domain.results import (
    AnalysisResult, NeedsConversion, NeedsRemux, NeedsRename, Skip,
    AlreadyConverted, AnalysisFailed, BitrateAboveThreshold, BitrateBelowThreshold,
    DurationAboveThreshold, DurationBelowThreshold, OutputExists,
)

logger = logging.getLogger(__name__)


def classify(
    file: VideoFile,
    info: Union[VideoInfo, Exception],
    analysis_filter: AnalysisFilter,
    exists: Callable[[Path], bool] = Path.exists,
) -> AnalysisResult:
    """Decides what a file needs. First matching rule wins.

    ``info`` is either the probe result or the error the probe raised.
    ``exists`` is the only filesystem access.
    """
    if isinstance(info, Exception):
        return Skip(file=file, reason=AnalysisFailed(error=str(info)))

    if info.is_target_codec and file.is_target_container:
        if not file.has_codec_marker:
            return NeedsRename(item=ProcessableFile.for_file(file, info))
        return Skip(file=file, reason=AlreadyConverted())

    if info.bitrate_kbps < analysis_filter.min_bitrate:
        return Skip(file=file, reason=BitrateBelowThreshold(
            bitrate=info.bitrate_kbps, threshold=analysis_filter.min_bitrate))

    if analysis_filter.max_bitrate is not None and info.bitrate_kbps > analysis_filter.max_bitrate:
        return Skip(file=file, reason=BitrateAboveThreshold(
            bitrate=info.bitrate_kbps, threshold=analysis_filter.max_bitrate))

    if analysis_filter.min_duration is not None and info.duration_seconds < analysis_filter.min_duration:
        return Skip(file=file, reason=DurationBelowThreshold(
            duration=info.duration_seconds, threshold=analysis_filter.min_duration))

    if analysis_filter.max_duration is not None and info.duration_seconds > analysis_filter.max_duration:
        return Skip(file=file, reason=DurationAboveThreshold(
            duration=info.duration_seconds, threshold=analysis_filter.max_duration))

    item = ProcessableFile.for_file(file, info)
    if not analysis_filter.overwrite and exists(item.output_path):
        return Skip(file=file, reason=OutputExists(
            path=item.output_path, source_duration=info.duration_seconds))

    if info.is_target_codec:
        return NeedsRemux(item=item)
    return NeedsConversion(item=item)


def analyze_file(file: VideoFile, prober, analysis_filter: AnalysisFilter) -> AnalysisResult:
    """Probes one file and classifies it. Probe failures become a Skip."""
    try:
        info = prober.get_video_info(file.path)
    except ProbeError as e:
        logger.warning(f"Probe failed for {file.path}: {e}")
        return classify(file, e, analysis_filter)
    if info.warning:
        logger.debug(f"ffprobe warning for {file.path}: {info.warning}")
    return classify(file, info, analysis_filter)
