import re
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

TARGET_EXTENSION = "mp4"
TARGET_CODECS = ("hevc", "h265")
CODEC_MARKER = ".x265"

# Codec token in a file stem: "clip.x265", "clip_hevc", "clip h.265 1080p"
CODEC_MARKER_RE = re.compile(r"(?:^|[.\-_ ])(?:x265|h\.?265|hevc)(?:$|[.\-_ ])", re.IGNORECASE)


class PendingAction(str, Enum):
    CONVERT = "convert"
    REMUX = "remux"


class EncodeOperation(str, Enum):
    REMUX = "remux"
    CONVERT = "convert"


class SortOrder(str, Enum):
    """Processing priority within the remux and convert buckets."""
    BITRATE = "bitrate"
    SIZE = "size"
    SIZE_ASC = "size-asc"
    DURATION = "duration"
    DURATION_ASC = "duration-asc"
    RESOLUTION = "resolution"
    RESOLUTION_ASC = "resolution-asc"
    IMPACT = "impact"
    NAME = "name"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def sql_order_clause(self) -> str:
        return {
            SortOrder.BITRATE: "bitrate_kbps DESC",
            SortOrder.SIZE: "size_bytes DESC",
            SortOrder.SIZE_ASC: "size_bytes ASC",
            SortOrder.DURATION: "duration DESC",
            SortOrder.DURATION_ASC: "duration ASC",
            SortOrder.RESOLUTION: "width * height DESC",
            SortOrder.RESOLUTION_ASC: "width * height ASC",
            SortOrder.IMPACT: "(bitrate_kbps / frames_per_second) * duration DESC",
            SortOrder.NAME: "full_path ASC",
        }[self]


class VideoFile(BaseModel):
    """A candidate file found by the directory walk. Identity is the path."""
    model_config = ConfigDict(frozen=True)

    path: Path
    name: str
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "VideoFile":
        path = Path(path)
        return cls(path=path, name=path.stem, extension=path.suffix.lstrip(".").lower())

    @property
    def has_codec_marker(self) -> bool:
        return CODEC_MARKER_RE.search(self.name) is not None

    @property
    def is_target_container(self) -> bool:
        return self.extension == TARGET_EXTENSION

    def output_path(self) -> Path:
        """Deterministic output location next to the source."""
        if self.has_codec_marker and not self.is_target_container:
            new_name = f"{self.name}.{TARGET_EXTENSION}"
        else:
            new_name = f"{self.name}{CODEC_MARKER}.{TARGET_EXTENSION}"
        return self.path.with_name(new_name)

    def __str__(self) -> str:
        return str(self.path)


class VideoInfo(BaseModel):
    """Metadata snapshot from a single probe."""
    codec: str = ""
    bitrate_kbps: int = 0
    size_bytes: int = 0
    duration_seconds: float = 0.0
    width: int = 0
    height: int = 0
    frames_per_second: float = 0.0
    warning: Optional[str] = None

    @property
    def is_target_codec(self) -> bool:
        return self.codec.lower() in TARGET_CODECS

    @property
    def is_4k(self) -> bool:
        return max(self.width, self.height) >= 2160

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def impact(self) -> float:
        """Rough savings potential: bitrate per frame times duration."""
        fps = self.frames_per_second if self.frames_per_second > 0 else 1.0
        return self.bitrate_kbps / fps * self.duration_seconds

    def quality_level(self) -> int:
        """NVENC constant-quality level, lower is better quality and bigger output."""
        bitrate_mbps = self.bitrate_kbps / 1000.0
        if self.is_4k:
            if bitrate_mbps > 26.0:
                return 30
            if bitrate_mbps > 18.0:
                return 31
            if bitrate_mbps > 10.0:
                return 32
            return 33
        if bitrate_mbps > 16.0:
            return 28
        if bitrate_mbps > 12.0:
            return 29
        if bitrate_mbps > 6.0:
            return 30
        return 31


class ProcessableFile(BaseModel):
    file: VideoFile
    info: VideoInfo
    output_path: Path

    @model_validator(mode="after")
    def check_output_differs(self) -> "ProcessableFile":
        if self.output_path == self.file.path:
            raise ValueError(f"Output path equals source path: {self.output_path}")
        return self

    @classmethod
    def for_file(cls, file: VideoFile, info: VideoInfo) -> "ProcessableFile":
        return cls(file=file, info=info, output_path=file.output_path())


class AnalysisFilter(BaseModel):
    """Per-run classification thresholds."""
    model_config = ConfigDict(frozen=True)

    min_bitrate: int = Field(default=0, ge=0)
    max_bitrate: Optional[int] = Field(default=None, ge=0)
    min_duration: Optional[float] = Field(default=None, ge=0)
    max_duration: Optional[float] = Field(default=None, ge=0)
    overwrite: bool = False


class EncodeSpec(BaseModel):
    """Everything the encoder adapter needs for one invocation."""
    operation: EncodeOperation
    input_path: Path
    output_path: Path
    quality_level: Optional[int] = None
    copy_audio: bool = True
    hw_filters: bool = True


def sort_key(order: SortOrder):
    """Key function over ProcessableFile for the given order (use with sorted())."""
    if order == SortOrder.BITRATE:
        return lambda item: -item.info.bitrate_kbps
    if order == SortOrder.SIZE:
        return lambda item: -item.info.size_bytes
    if order == SortOrder.SIZE_ASC:
        return lambda item: item.info.size_bytes
    if order == SortOrder.DURATION:
        return lambda item: -item.info.duration_seconds
    if order == SortOrder.DURATION_ASC:
        return lambda item: item.info.duration_seconds
    if order == SortOrder.RESOLUTION:
        return lambda item: -item.info.pixel_count
    if order == SortOrder.RESOLUTION_ASC:
        return lambda item: item.info.pixel_count
    if order == SortOrder.IMPACT:
        return lambda item: -item.info.impact
    return lambda item: str(item.file.path)
