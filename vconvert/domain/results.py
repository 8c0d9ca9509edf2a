"""Outcome types for analysis and execution.

Each family is a small closed set of pydantic models. Call sites dispatch
with ``isinstance`` and raise ``TypeError`` for anything they do not know.
"""
from pathlib import Path
from pydantic import BaseModel
from vconvert.domain.models import VideoFile, ProcessableFile
from vconvert.domain.stats import ConversionStats


class SkipReason(BaseModel):
    """Base class for all skip reasons."""
    pass


class AlreadyConverted(SkipReason):
    def __str__(self) -> str:
        return "Already HEVC in MP4 container"


class BitrateBelowThreshold(SkipReason):
    bitrate: int
    threshold: int

    def __str__(self) -> str:
        return f"Bitrate {self.bitrate} kbps is below threshold {self.threshold} kbps"


class BitrateAboveThreshold(SkipReason):
    bitrate: int
    threshold: int

    def __str__(self) -> str:
        return f"Bitrate {self.bitrate} kbps is above threshold {self.threshold} kbps"


class DurationBelowThreshold(SkipReason):
    duration: float
    threshold: float

    def __str__(self) -> str:
        return f"Duration {self.duration:.1f}s is below threshold {self.threshold:.1f}s"


class DurationAboveThreshold(SkipReason):
    duration: float
    threshold: float

    def __str__(self) -> str:
        return f"Duration {self.duration:.1f}s is above threshold {self.threshold:.1f}s"


class OutputExists(SkipReason):
    path: Path
    source_duration: float

    def __str__(self) -> str:
        return f'Output file already exists: "{self.path}"'


class AnalysisFailed(SkipReason):
    error: str

    def __str__(self) -> str:
        return f"Failed to analyze: {self.error}"


class AnalysisResult(BaseModel):
    """Base class for classifier decisions."""
    pass


class NeedsConversion(AnalysisResult):
    item: ProcessableFile


class NeedsRemux(AnalysisResult):
    item: ProcessableFile


class NeedsRename(AnalysisResult):
    item: ProcessableFile


class Skip(AnalysisResult):
    file: VideoFile
    reason: SkipReason


class ProcessResult(BaseModel):
    """Base class for execution outcomes. ``elapsed`` is wall time in seconds."""
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return isinstance(self, (Converted, Remuxed))


class Converted(ProcessResult):
    stats: ConversionStats


class Remuxed(ProcessResult):
    pass


class Failed(ProcessResult):
    error: str
    source_missing: bool = False
