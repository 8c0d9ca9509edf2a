import pytest
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from vconvert.domain.models import VideoInfo, EncodeSpec
from vconvert.domain.errors import ProbeError
from vconvert.infrastructure.ffmpeg import FFmpegAdapter


class FakeProber:
    """In-memory stand-in for FFprobeAdapter keyed by path."""

    def __init__(self, infos: Optional[Dict[Path, Union[VideoInfo, Exception]]] = None):
        self.infos: Dict[Path, Union[VideoInfo, Exception]] = {Path(p): v for p, v in (infos or {}).items()}
        self.calls: List[Path] = []

    def set(self, path: Path, info: Union[VideoInfo, Exception]):
        self.infos[Path(path)] = info

    def get_video_info(self, path: Path) -> VideoInfo:
        path = Path(path)
        self.calls.append(path)
        value = self.infos.get(path)
        if value is None:
            raise ProbeError(f"No such file: {path}")
        if isinstance(value, Exception):
            raise value
        return value


class FakeEncoder:
    """Scripted stand-in for FFmpegAdapter.

    Each ``encode`` call takes the next ``(exit_code, output_info)`` outcome.
    A zero exit with info writes the output file and registers it with the
    prober; a non-zero exit leaves a partial output behind.
    """

    def __init__(self, prober: FakeProber, outcomes: Optional[List[Tuple[int, Optional[VideoInfo]]]] = None,
                 default_info: Optional[VideoInfo] = None):
        self.prober = prober
        self.outcomes = list(outcomes or [])
        self.default_info = default_info or VideoInfo(codec="hevc", size_bytes=100, duration_seconds=60.0)
        self.specs: List[EncodeSpec] = []
        self.on_encode = None
        self._builder = FFmpegAdapter()

    def build_command(self, spec: EncodeSpec) -> List[str]:
        return self._builder.build_command(spec)

    def encode(self, spec: EncodeSpec) -> int:
        self.specs.append(spec)
        code, info = self.outcomes.pop(0) if self.outcomes else (0, self.default_info)
        if code != 0:
            spec.output_path.write_bytes(b"partial")
        elif info is not None:
            spec.output_path.write_bytes(b"x" * max(info.size_bytes, 1))
            self.prober.set(spec.output_path, info)
        if self.on_encode is not None:
            self.on_encode(spec)
        return code


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def encoder(prober):
    return FakeEncoder(prober)


@pytest.fixture
def make_video(tmp_path):
    """Creates a placeholder video file and returns its path."""

    def _make(name: str, content: bytes = b"video-data", directory: Optional[Path] = None) -> Path:
        path = (directory or tmp_path) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def make_encoder(prober):
    def _make(outcomes=None, default_info=None) -> FakeEncoder:
        return FakeEncoder(prober, outcomes, default_info)

    return _make
