import sqlite3
import pytest
from unittest.mock import MagicMock, patch
from pathlib import Path
from vconvert.domain.models import VideoInfo, PendingAction, SortOrder
from vconvert.domain.errors import QueueError
from vconvert.infrastructure.database import PendingQueue, PendingFileFilter


@pytest.fixture
def queue(tmp_path):
    with PendingQueue(tmp_path / "db" / "queue.db") as q:
        yield q


def info(kbps=9000, size=1000, duration=60.0, codec="h264"):
    return VideoInfo(codec=codec, bitrate_kbps=kbps, size_bytes=size, duration_seconds=duration,
                     width=1920, height=1080, frames_per_second=25.0)


def test_upsert_round_trip(queue, tmp_path):
    path = tmp_path / "a.mkv"
    queue.upsert(path, "mkv", info(), PendingAction.CONVERT)

    records = queue.get_pending()
    assert len(records) == 1
    record = records[0]
    assert record.full_path == path
    assert record.action == PendingAction.CONVERT
    assert record.to_video_info() == info()


def test_upsert_replaces_existing_record(queue, tmp_path):
    path = tmp_path / "a.mkv"
    queue.upsert(path, "mkv", info(kbps=9000), PendingAction.CONVERT)
    first = queue.get_pending_file(path)
    queue.upsert(path, "mkv", info(kbps=9000, codec="hevc"), PendingAction.REMUX)

    records = queue.get_pending()
    assert len(records) == 1
    assert records[0].action == PendingAction.REMUX
    assert records[0].codec == "hevc"
    assert records[0].id == first.id
    assert records[0].created_time == first.created_time


def test_remove(queue, tmp_path):
    path = tmp_path / "a.mkv"
    queue.upsert(path, "mkv", info(), PendingAction.CONVERT)
    assert queue.remove(path) is True
    assert queue.remove(path) is False
    assert queue.get_pending() == []


def test_remove_missing(queue, make_video):
    paths = [make_video(f"{n}.mkv") for n in ("one", "two", "three")]
    for p in paths:
        queue.upsert(p, "mkv", info(), PendingAction.CONVERT)
    paths[1].unlink()

    assert queue.remove_missing() == 1
    remaining = {r.full_path for r in queue.get_pending()}
    assert remaining == {paths[0], paths[2]}


def test_filters_and_limit(queue, tmp_path):
    queue.upsert(tmp_path / "a.mkv", "mkv", info(kbps=3000, size=10), PendingAction.CONVERT)
    queue.upsert(tmp_path / "b.avi", "avi", info(kbps=9000, size=30), PendingAction.CONVERT)
    queue.upsert(tmp_path / "c.mkv", "mkv", info(kbps=12000, size=20, codec="hevc"), PendingAction.REMUX)

    assert [r.full_path.name for r in queue.get_pending(PendingFileFilter(action=PendingAction.REMUX))] == ["c.mkv"]
    mkv = queue.get_pending(PendingFileFilter(extensions=[".MKV"]))
    assert {r.full_path.name for r in mkv} == {"a.mkv", "c.mkv"}
    fast = queue.get_pending(PendingFileFilter(min_bitrate=5000))
    assert {r.full_path.name for r in fast} == {"b.avi", "c.mkv"}
    assert len(queue.get_pending(PendingFileFilter(limit=2))) == 2


def test_default_order_groups_by_action_then_size(queue, tmp_path):
    queue.upsert(tmp_path / "small.mkv", "mkv", info(size=10), PendingAction.CONVERT)
    queue.upsert(tmp_path / "big.mkv", "mkv", info(size=99), PendingAction.CONVERT)
    queue.upsert(tmp_path / "remux.mkv", "mkv", info(size=50, codec="hevc"), PendingAction.REMUX)
    names = [r.full_path.name for r in queue.get_pending()]
    assert names == ["big.mkv", "small.mkv", "remux.mkv"]


def test_sort_order(queue, tmp_path):
    queue.upsert(tmp_path / "b.mkv", "mkv", info(duration=10.0), PendingAction.CONVERT)
    queue.upsert(tmp_path / "a.mkv", "mkv", info(duration=30.0), PendingAction.CONVERT)
    by_name = queue.get_pending(PendingFileFilter(sort=SortOrder.NAME))
    assert [r.full_path.name for r in by_name] == ["a.mkv", "b.mkv"]
    shortest = queue.get_pending(PendingFileFilter(sort=SortOrder.DURATION_ASC))
    assert [r.full_path.name for r in shortest] == ["b.mkv", "a.mkv"]


def test_stats_and_extension_stats(queue, tmp_path):
    queue.upsert(tmp_path / "a.mkv", "mkv", info(size=100), PendingAction.CONVERT)
    queue.upsert(tmp_path / "b.mkv", "mkv", info(size=50, codec="hevc"), PendingAction.REMUX)
    queue.upsert(tmp_path / "c.avi", "avi", info(size=25), PendingAction.CONVERT)

    stats = queue.stats()
    assert (stats.total_files, stats.convert_count, stats.remux_count, stats.total_size) == (3, 2, 1, 175)

    by_ext = {row.extension: row for row in queue.extension_stats()}
    assert by_ext["mkv"].total == 2
    assert by_ext["mkv"].remux_count == 1
    assert by_ext["avi"].total_size == 25


def test_empty_stats(queue):
    stats = queue.stats()
    assert stats.total_files == 0
    assert stats.total_size == 0
    assert queue.extension_stats() == []


def test_clear(queue, tmp_path):
    queue.upsert(tmp_path / "a.mkv", "mkv", info(), PendingAction.CONVERT)
    queue.upsert(tmp_path / "b.mkv", "mkv", info(), PendingAction.CONVERT)
    assert queue.clear() == 2
    assert queue.get_pending() == []


def test_to_processable_rebuilds_without_probe(queue, tmp_path):
    path = tmp_path / "movie.avi"
    queue.upsert(path, "avi", info(), PendingAction.CONVERT)
    item = queue.get_pending_file(path).to_processable()
    assert item.file.path == path
    assert item.output_path == tmp_path / "movie.x265.mp4"
    assert item.info.bitrate_kbps == 9000


def test_records_persist_across_connections(tmp_path):
    db = tmp_path / "queue.db"
    with PendingQueue(db) as q:
        q.upsert(tmp_path / "a.mkv", "mkv", info(), PendingAction.REMUX)
    with PendingQueue(db) as q:
        assert len(q.get_pending()) == 1


def test_open_failure_raises_queue_error(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises(QueueError):
        PendingQueue(blocker / "queue.db")


def test_connection_closed_when_setup_fails(tmp_path):
    conn = MagicMock()
    conn.execute.side_effect = sqlite3.OperationalError("database is locked")
    with patch("sqlite3.connect", return_value=conn):
        with pytest.raises(QueueError):
            PendingQueue(tmp_path / "queue.db")
    conn.close.assert_called_once()
