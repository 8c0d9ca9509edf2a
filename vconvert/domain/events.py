from typing import Optional
from pathlib import Path
from pydantic import BaseModel
from .models import VideoFile, ProcessableFile, EncodeOperation
from .results import SkipReason, ProcessResult
from .stats import AnalysisStats, RunStats

class Event(BaseModel):
    """Base class for all domain events."""
    pass

class DiscoveryStarted(Event):
    directory: Path

class DiscoveryFinished(Event):
    files_found: int

class FileSkipped(Event):
    file: VideoFile
    reason: SkipReason

class AnalysisFinished(Event):
    stats: AnalysisStats

class DuplicateChecked(Event):
    file: VideoFile
    existing: Path
    removed: bool
    message: str

class RenameApplied(Event):
    source: Path
    target: Path
    dry_run: bool = False

class QueueCleaned(Event):
    removed: int

class JobEvent(Event):
    item: ProcessableFile
    operation: EncodeOperation
    index: str = ""

class JobStarted(JobEvent):
    quality_level: Optional[int] = None

class JobCompleted(JobEvent):
    result: ProcessResult

class JobFailed(JobEvent):
    error_message: str

class ActionMessage(Event):
    """Free-form progress note (fallback attempts, cleanup warnings)."""
    message: str
    level: str = "warning"

class LimitReached(Event):
    limit: int

class RunFinished(Event):
    stats: RunStats
    aborted: bool = False
