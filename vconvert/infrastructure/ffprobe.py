import subprocess
import logging
from pathlib import Path
from typing import Dict, List, Optional
from vconvert.domain.models import VideoInfo
from vconvert.domain.errors import ProbeError

logger = logging.getLogger(__name__)

SHOW_ENTRIES = (
    "stream=codec_name,bit_rate,width,height,r_frame_rate"
    ":stream_tags=BPS,BPS-eng"
    ":format=bit_rate,size,duration"
)

BPS_KEYS = ("BPS", "BPS-eng", "TAG:BPS", "TAG:BPS-eng")


def _positive_int(value: Optional[str]) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _parse_fraction(value: str) -> Optional[float]:
    # "30000/1001" or plain "25"
    if "/" in value:
        num, _, den = value.partition("/")
        try:
            n, d = float(num), float(den)
        except ValueError:
            return None
        return n / d if d > 0 else None
    try:
        return float(value)
    except ValueError:
        return None


def parse_probe_output(stdout: str, stderr: str = "", path: Optional[Path] = None) -> VideoInfo:
    """Parses ffprobe ``key=value`` output into a VideoInfo.

    Example input::

        codec_name=h264
        width=1920
        height=1080
        r_frame_rate=30/1
        bit_rate=7345573
        TAG:BPS=7400000
        duration=2425.237007
        size=2292495805
        bit_rate=7562133

    Stream entries are printed before format entries, so the first
    ``bit_rate`` belongs to the video stream and the second to the container.
    Bitrate falls back stream -> container -> BPS tag -> 0.
    """
    values: Dict[str, str] = {}
    bit_rates: List[str] = []
    bps_tag: Optional[int] = None

    for line in stdout.splitlines():
        key, sep, value = line.strip().partition("=")
        if not sep:
            continue
        value = value.strip()
        if key == "bit_rate":
            bit_rates.append(value)
        elif key in BPS_KEYS:
            if bps_tag is None:
                bps_tag = _positive_int(value)
        elif value and value != "N/A":
            values.setdefault(key, value)

    bitrate_bps = 0
    candidates = [_positive_int(v) for v in bit_rates[:2]] + [bps_tag]
    for candidate in candidates:
        if candidate:
            bitrate_bps = candidate
            break

    size_bytes = _positive_int(values.get("size"))
    if size_bytes is None:
        try:
            size_bytes = path.stat().st_size if path is not None else 0
        except OSError:
            size_bytes = 0

    try:
        duration = float(values.get("duration", 0.0))
    except ValueError:
        duration = 0.0

    fps = _parse_fraction(values["r_frame_rate"]) if "r_frame_rate" in values else None

    return VideoInfo(
        codec=values.get("codec_name", "").lower(),
        bitrate_kbps=bitrate_bps // 1000,
        size_bytes=size_bytes,
        duration_seconds=duration,
        width=_positive_int(values.get("width")) or 0,
        height=_positive_int(values.get("height")) or 0,
        frames_per_second=fps or 0.0,
        warning=stderr.strip() or None,
    )


class FFprobeAdapter:
    """Wrapper around ffprobe to extract the first video stream's metadata."""

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary

    def _build_command(self, file_path: Path) -> List[str]:
        return [
            self.binary,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", SHOW_ENTRIES,
            "-of", "default=nokey=0:noprint_wrappers=1",
            str(file_path),
        ]

    def get_video_info(self, file_path: Path) -> VideoInfo:
        """Executes ffprobe and parses its output. Raises ProbeError on failure."""
        cmd = self._build_command(file_path)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise ProbeError(f"Failed to execute ffprobe: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise ProbeError(f"ffprobe failed: {stderr or f'exit code {result.returncode}'}")

        info = parse_probe_output(result.stdout, result.stderr or "", Path(file_path))
        logger.debug(f"Probed {file_path}: {info.codec} {info.width}x{info.height} {info.bitrate_kbps} kbps")
        return info
