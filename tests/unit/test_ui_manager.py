import io
import pytest
from pathlib import Path
from rich.console import Console
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.database import PendingFile, QueueStats, ExtensionStats
from vconvert.ui.manager import UIManager
from vconvert.ui.report import print_queue, print_extension_stats
from vconvert.ui.formatting import format_size, format_duration
from vconvert.domain.models import VideoFile, VideoInfo, ProcessableFile, EncodeOperation, PendingAction
from vconvert.domain.results import Converted, BitrateBelowThreshold, OutputExists
from vconvert.domain.stats import ConversionStats, RunStats
from vconvert.domain.events import (
    FileSkipped, JobStarted, JobCompleted, JobFailed, RenameApplied, RunFinished
)


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, force_terminal=False, color_system=None)


def output_of(console):
    return console.file.getvalue()


def item():
    info = VideoInfo(codec="h264", bitrate_kbps=9000, width=1920, height=1080, duration_seconds=90.0)
    return ProcessableFile.for_file(VideoFile.from_path(Path("/v/movie.mkv")), info)


def test_job_lifecycle_is_printed(console):
    bus = EventBus()
    UIManager(bus, console)

    bus.publish(JobStarted(item=item(), operation=EncodeOperation.CONVERT, index="1/2", quality_level=30))
    stats = ConversionStats(original_size=2048, original_bitrate_kbps=9000,
                            converted_size=1024, converted_bitrate_kbps=4000)
    bus.publish(JobCompleted(item=item(), operation=EncodeOperation.CONVERT, index="1/2",
                             result=Converted(stats=stats, elapsed=65.0)))
    bus.publish(JobFailed(item=item(), operation=EncodeOperation.CONVERT, index="2/2",
                          error_message="Conversion failed with exit code 1"))

    text = output_of(console)
    assert "1/2 Convert: /v/movie.mkv" in text
    assert "cq=30" in text
    assert "Done in 1:05" in text
    assert "-50.0%" in text
    assert "Failed movie.mkv: Conversion failed with exit code 1" in text


def test_skips_shown_only_when_verbose(console):
    bus = EventBus()
    UIManager(bus, console, verbose=False)
    vf = VideoFile.from_path(Path("/v/low.mkv"))
    bus.publish(FileSkipped(file=vf, reason=BitrateBelowThreshold(bitrate=100, threshold=8000)))
    assert output_of(console) == ""

    bus.publish(FileSkipped(file=vf, reason=OutputExists(path=Path("/v/low.x265.mp4"), source_duration=1.0)))
    assert "Output file already exists" in output_of(console)


def test_rename_and_summary(console):
    bus = EventBus()
    UIManager(bus, console)
    bus.publish(RenameApplied(source=Path("/v/a.mp4"), target=Path("/v/a.x265.mp4"), dry_run=True))
    bus.publish(RunFinished(stats=RunStats(files_renamed=1, files_failed=2), aborted=True))

    text = output_of(console)
    assert "Would rename a.mp4 -> a.x265.mp4" in text
    assert "Aborted" in text
    assert "SUMMARY" in text
    assert "Failed" in text


def test_print_queue_respects_display_limit(console):
    records = [
        PendingFile(id=n, full_path=Path(f"/v/file{n}.mkv"), extension="mkv", codec="h264",
                    bitrate_kbps=9000, size_bytes=1024, duration=60.0, width=1920, height=1080,
                    frames_per_second=25.0, action=PendingAction.CONVERT,
                    created_time="2024-01-01T00:00:00", modified_time="2024-01-01T00:00:00")
        for n in range(3)
    ]
    print_queue(console, records, QueueStats(total_files=3, convert_count=3, total_size=3072), display_limit=2)
    text = output_of(console)
    assert "file0.mkv" in text
    assert "file2.mkv" not in text
    assert "and 1 more" in text


def test_print_extension_stats(console):
    print_extension_stats(console, [ExtensionStats(extension="avi", total=4, convert_count=4,
                                                    remux_count=0, total_size=4096)])
    assert "avi" in output_of(console)
    assert "4.00 KiB" in output_of(console)


@pytest.mark.parametrize("size,expected", [
    (512, "512 B"),
    (1536, "1.50 KiB"),
    (5 * 1024 ** 3, "5.00 GiB"),
    (-2048, "-2.00 KiB"),
])
def test_format_size(size, expected):
    assert format_size(size) == expected


def test_format_duration():
    assert format_duration(59.6) == "1:00"
    assert format_duration(3725) == "1:02:05"
