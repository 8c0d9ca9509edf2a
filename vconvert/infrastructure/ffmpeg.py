import subprocess
import logging
import shlex
from typing import List
from vconvert.domain.models import EncodeSpec, EncodeOperation
from vconvert.domain.errors import EncoderError

FFMPEG_DEFAULT_ARGS = ["-hide_banner", "-nostdin", "-stats", "-loglevel", "info", "-y"]

# -map 0:v:0  first video stream only
# -map 0:a?   all audio streams, if any
# -map -0:t   drop attachments
# -map -0:d   drop data streams
# -sn         drop subtitles (non mov_text subs break the mp4 muxer)
STREAM_SELECTION = ["-map", "0:v:0", "-map", "0:a?", "-map", "-0:t", "-map", "-0:d", "-sn"]

AAC_AUDIO = ["-c:a", "aac", "-b:a", "128k"]
COPY_AUDIO = ["-c:a", "copy"]

# NVENC tuning
EXTRA_HW_FRAMES = "64"
LOOKAHEAD = "48"
PRESET = "p5"


class FFmpegAdapter:
    """Wrapper around ffmpeg for remuxing and HEVC conversion."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def build_command(self, spec: EncodeSpec) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        if spec.operation == EncodeOperation.REMUX:
            return self._build_remux_command(spec)
        return self._build_convert_command(spec)

    def _build_remux_command(self, spec: EncodeSpec) -> List[str]:
        cmd = [self.binary, *FFMPEG_DEFAULT_ARGS, "-i", str(spec.input_path)]
        cmd.extend(STREAM_SELECTION)
        cmd.extend(["-c:v", "copy"])
        cmd.extend(COPY_AUDIO if spec.copy_audio else AAC_AUDIO)
        cmd.extend(["-movflags", "+faststart", "-tag:v", "hvc1"])
        cmd.append(str(spec.output_path))
        return cmd

    def _build_convert_command(self, spec: EncodeSpec) -> List[str]:
        if spec.quality_level is None:
            raise ValueError("Conversion requires a quality level")

        cmd = [self.binary, *FFMPEG_DEFAULT_ARGS, "-probesize", "50M", "-analyzeduration", "1M"]

        # CUDA upload/scale keeps frames on the GPU; the fallback lets ffmpeg
        # negotiate pixel formats in software.
        if spec.hw_filters:
            cmd.extend(["-extra_hw_frames", EXTRA_HW_FRAMES])

        cmd.extend(["-i", str(spec.input_path)])

        if spec.hw_filters:
            cmd.extend(["-vf", "hwupload_cuda,scale_cuda=format=nv12"])

        cmd.extend([
            "-c:v", "hevc_nvenc",
            "-rc:v", "vbr",
            "-cq:v", str(spec.quality_level),
            "-preset", PRESET,
            "-b:v", "0",
            "-rc-lookahead", LOOKAHEAD,
            "-spatial_aq", "1",
            "-temporal_aq", "1",
            "-tag:v", "hvc1",
        ])
        cmd.extend(COPY_AUDIO if spec.copy_audio else AAC_AUDIO)
        cmd.append(str(spec.output_path))
        return cmd

    def describe(self, spec: EncodeSpec) -> str:
        return shlex.join(self.build_command(spec))

    def encode(self, spec: EncodeSpec) -> int:
        """Runs ffmpeg to completion and returns its exit status.

        The child gets its own session so a Ctrl+C aimed at vconvert does not
        kill the encode in progress.
        """
        cmd = self.build_command(spec)
        self.logger.info(f"FFMPEG_START: {spec.operation.value} {spec.input_path.name} -> {spec.output_path.name}")
        self.logger.debug(f"FFMPEG_CMD: {shlex.join(cmd)}")
        try:
            process = subprocess.run(cmd, start_new_session=True)
        except OSError as e:
            raise EncoderError(f"Failed to execute ffmpeg: {e}") from e
        self.logger.info(f"FFMPEG_END: {spec.input_path.name} code={process.returncode}")
        return process.returncode
