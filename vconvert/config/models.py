from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from vconvert.domain.models import AnalysisFilter, SortOrder, PendingAction
from vconvert.infrastructure.database import DEFAULT_DB_PATH, PendingFileFilter
from vconvert.infrastructure.logging import DEFAULT_LOG_DIR

DEFAULT_EXTENSIONS = ["mp4", "mkv"]
OTHER_EXTENSIONS = ["mkv", "wmv", "flv", "m4v", "ts", "mpg", "avi", "mov", "webm"]
ALL_EXTENSIONS = ["mp4"] + OTHER_EXTENSIONS


class GeneralConfig(BaseModel):
    min_bitrate: int = Field(default=8000, ge=0)
    max_bitrate: Optional[int] = Field(default=None, ge=0)
    min_duration: Optional[float] = Field(default=None, ge=0)
    max_duration: Optional[float] = Field(default=None, ge=0)
    extensions: List[str] = Field(default_factory=list)
    convert_all: bool = False
    convert_other: bool = False
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    recurse: bool = False
    count: Optional[int] = Field(default=None, ge=0)
    sort: SortOrder = SortOrder.NAME
    delete: bool = False
    overwrite: bool = False
    dry_run: bool = False
    skip_convert: bool = False
    skip_remux: bool = False
    resolve_duplicates: bool = False
    threads: Optional[int] = Field(default=None, gt=0)
    display_limit: int = Field(default=100, ge=0)
    db_path: Path = DEFAULT_DB_PATH
    log_dir: Path = DEFAULT_LOG_DIR
    verbose: bool = False
    debug: bool = False

    @field_validator('extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return [e.strip().lower().lstrip(".") for e in v if e.strip()]

    @field_validator('db_path', 'log_dir')
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @model_validator(mode='after')
    def check_ranges(self) -> "GeneralConfig":
        if self.max_bitrate is not None and self.max_bitrate < self.min_bitrate:
            raise ValueError(f"max_bitrate ({self.max_bitrate}) is below min_bitrate ({self.min_bitrate})")
        if (
            self.min_duration is not None
            and self.max_duration is not None
            and self.max_duration < self.min_duration
        ):
            raise ValueError(f"max_duration ({self.max_duration}) is below min_duration ({self.min_duration})")
        return self


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)

    def resolved_extensions(self) -> List[str]:
        general = self.general
        if general.extensions:
            return list(general.extensions)
        if general.convert_all:
            return list(ALL_EXTENSIONS)
        if general.convert_other:
            return list(OTHER_EXTENSIONS)
        return list(DEFAULT_EXTENSIONS)

    def analysis_filter(self) -> AnalysisFilter:
        general = self.general
        return AnalysisFilter(
            min_bitrate=general.min_bitrate,
            max_bitrate=general.max_bitrate,
            min_duration=general.min_duration,
            max_duration=general.max_duration,
            overwrite=general.overwrite,
        )

    def pending_filter(self) -> PendingFileFilter:
        """Queue selection for resume runs, using the same thresholds as a scan."""
        general = self.general
        action = None
        if general.skip_remux and not general.skip_convert:
            action = PendingAction.CONVERT
        elif general.skip_convert and not general.skip_remux:
            action = PendingAction.REMUX
        return PendingFileFilter(
            action=action,
            extensions=self.resolved_extensions(),
            min_bitrate=general.min_bitrate,
            max_bitrate=general.max_bitrate,
            min_duration=general.min_duration,
            max_duration=general.max_duration,
            limit=general.count,
            sort=general.sort,
        )
