import pytest
from pathlib import Path
from unittest.mock import MagicMock
from vconvert.domain.models import VideoFile, VideoInfo, ProcessableFile, EncodeOperation
from vconvert.domain.errors import ProbeError
from vconvert.domain.results import Converted, Remuxed, Failed
from vconvert.domain.events import JobStarted, JobCompleted, JobFailed, ActionMessage
from vconvert.infrastructure.event_bus import EventBus
from vconvert.infrastructure.file_ops import FileOps
from vconvert.pipeline.abort import AbortFlag
from vconvert.pipeline.engine import ExecutionEngine

SOURCE_INFO = VideoInfo(codec="h264", bitrate_kbps=9000, size_bytes=1000, duration_seconds=100.0,
                        width=1920, height=1080, frames_per_second=25.0)


def small_output(duration=100.0, size=400):
    return VideoInfo(codec="hevc", bitrate_kbps=3000, size_bytes=size, duration_seconds=duration)


@pytest.fixture
def events():
    return []


@pytest.fixture
def bus(events):
    bus = EventBus()
    for event_type in (JobStarted, JobCompleted, JobFailed, ActionMessage):
        bus.subscribe(event_type, events.append)
    return bus


def make_item(make_video, name="movie.mkv", info=SOURCE_INFO):
    path = make_video(name)
    return ProcessableFile.for_file(VideoFile.from_path(path), info)


def make_engine(encoder, prober, bus, **kwargs):
    return ExecutionEngine(encoder=encoder, prober=prober,
                           file_ops=kwargs.pop("file_ops", FileOps(delete=True)),
                           event_bus=bus, **kwargs)


def test_convert_success_removes_source(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output())])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Converted)
    assert result.stats.converted_size == 400
    assert result.elapsed >= 0.0
    assert item.output_path.exists()
    assert not item.file.path.exists()
    assert encoder.specs[0].quality_level == 30
    assert encoder.specs[0].hw_filters
    assert encoder.specs[0].copy_audio


def test_convert_transcodes_audio_for_other_containers(prober, make_video, make_encoder, bus):
    item = make_item(make_video, "movie.wmv")
    encoder = make_encoder([(0, small_output())])
    make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)
    assert not encoder.specs[0].copy_audio


def test_convert_falls_back_to_software_filters(prober, make_video, make_encoder, bus, events):
    item = make_item(make_video)
    encoder = make_encoder([(1, None), (0, small_output())])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Converted)
    assert [s.hw_filters for s in encoder.specs] == [True, False]
    assert any(isinstance(e, ActionMessage) for e in events)


def test_convert_fails_after_both_attempts(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(1, None), (187, None)])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Failed)
    assert "187" in result.error
    assert not item.output_path.exists()
    assert item.file.path.exists()


def test_larger_output_triggers_exactly_one_reconversion(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output(size=1500)), (0, small_output(size=700))])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Converted)
    assert len(encoder.specs) == 2
    assert encoder.specs[1].quality_level == encoder.specs[0].quality_level + 2
    assert encoder.specs[1].hw_filters == encoder.specs[0].hw_filters
    assert result.stats.converted_size == 700


def test_reconversion_keeps_software_mode(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(1, None), (0, small_output(size=1500)), (0, small_output(size=700))])
    make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)
    assert [s.hw_filters for s in encoder.specs] == [True, False, False]


def test_still_larger_output_is_accepted(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output(size=1500)), (0, small_output(size=1200))])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Converted)
    assert len(encoder.specs) == 2
    assert result.stats.converted_size == 1200


def test_short_output_is_rejected(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output(duration=80.0))])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Failed)
    assert not item.output_path.exists()
    assert item.file.path.exists()


def test_output_probe_error_is_caught(prober, make_video, make_encoder, bus, events):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output())])
    encoder.on_encode = lambda spec: prober.set(spec.output_path, ProbeError("corrupt"))

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Failed)
    assert "corrupt" in result.error
    assert not item.output_path.exists()
    assert isinstance(events[-1], JobFailed)


def test_remux_success(prober, make_video, make_encoder, bus):
    item = make_item(make_video, info=SOURCE_INFO.model_copy(update={"codec": "hevc"}))
    encoder = make_encoder([(0, small_output())])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.REMUX)

    assert isinstance(result, Remuxed)
    assert encoder.specs[0].copy_audio
    assert not item.file.path.exists()


def test_remux_retries_with_aac(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(1, None), (0, small_output())])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.REMUX)

    assert isinstance(result, Remuxed)
    assert [s.copy_audio for s in encoder.specs] == [True, False]


def test_remux_second_failure(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(1, None), (1, None)])

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.REMUX)

    assert isinstance(result, Failed)
    assert not item.output_path.exists()
    assert item.file.path.exists()


def test_remux_without_output_fails(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = make_encoder([(0, None)])
    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.REMUX)
    assert isinstance(result, Failed)
    assert item.file.path.exists()


def test_missing_source(prober, make_video, make_encoder, bus, encoder):
    item = make_item(make_video)
    item.file.path.unlink()

    result = make_engine(encoder, prober, bus).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Failed)
    assert result.source_missing
    assert encoder.specs == []


def test_source_cleanup_failure_keeps_success(prober, make_video, make_encoder, bus, events):
    item = make_item(make_video)
    encoder = make_encoder([(0, small_output())])
    file_ops = MagicMock()
    file_ops.remove.side_effect = PermissionError("read-only")

    result = make_engine(encoder, prober, bus, file_ops=file_ops).process(item, EncodeOperation.CONVERT)

    assert isinstance(result, Converted)
    assert any(isinstance(e, ActionMessage) and "read-only" in e.message for e in events)


def test_dry_run_touches_nothing(prober, make_video, make_encoder, bus):
    item = make_item(make_video)
    encoder = MagicMock()
    encoder.build_command.return_value = ["ffmpeg", "-i", str(item.file.path)]

    engine = make_engine(encoder, prober, bus, dry_run=True)
    assert isinstance(engine.process(item, EncodeOperation.CONVERT), Converted)
    assert isinstance(engine.process(item, EncodeOperation.REMUX), Remuxed)

    encoder.encode.assert_not_called()
    assert item.file.path.exists()
    assert not item.output_path.exists()


def test_run_batch_reports_every_result(prober, make_video, make_encoder, bus):
    items = [make_item(make_video, f"movie{n}.mkv") for n in range(3)]
    encoder = make_encoder([(0, small_output()), (1, None), (1, None), (0, small_output())])
    results = []

    aborted = make_engine(encoder, prober, bus).run_batch(
        items, EncodeOperation.CONVERT, AbortFlag(), lambda item, result: results.append(result))

    assert not aborted
    assert [type(r) for r in results] == [Converted, Failed, Converted]


def test_run_batch_checks_abort_between_files(prober, make_video, make_encoder, bus, events):
    items = [make_item(make_video, f"movie{n}.mkv") for n in range(3)]
    abort = AbortFlag()
    encoder = make_encoder(default_info=small_output())
    encoder.on_encode = lambda spec: abort.set()
    results = []

    aborted = make_engine(encoder, prober, bus).run_batch(
        items, EncodeOperation.CONVERT, abort, lambda item, result: results.append(result))

    assert aborted
    assert len(results) == 1
    assert isinstance(results[0], Converted)
    assert items[1].file.path.exists()
    started = [e for e in events if isinstance(e, JobStarted)]
    assert [e.index for e in started] == ["1/3"]
