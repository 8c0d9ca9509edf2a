"""SQLite-backed queue of files that still need a remux or conversion.

A record is written as soon as analysis decides a file needs work and is
removed only once that work is confirmed. Interrupted runs therefore leave
their unfinished files in the queue for ``--from-db`` to pick up.
"""
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field
from vconvert.domain.models import (
    PendingAction, ProcessableFile, SortOrder, VideoFile, VideoInfo
)
from vconvert.domain.errors import QueueError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".vconvert" / "queue.db"

DEFAULT_ORDER = "action, size_bytes DESC"

SCHEMA = """
CREATE TABLE IF NOT EXISTS pending_files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_path TEXT NOT NULL UNIQUE,
    extension TEXT NOT NULL,
    codec TEXT NOT NULL,
    bitrate_kbps INTEGER NOT NULL,
    size_bytes INTEGER NOT NULL,
    duration REAL NOT NULL,
    width INTEGER NOT NULL,
    height INTEGER NOT NULL,
    frames_per_second REAL NOT NULL,
    action TEXT NOT NULL,
    created_time TEXT NOT NULL,
    modified_time TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_pending_action ON pending_files(action);
CREATE INDEX IF NOT EXISTS idx_pending_extension ON pending_files(extension);
CREATE INDEX IF NOT EXISTS idx_pending_bitrate ON pending_files(bitrate_kbps);
CREATE INDEX IF NOT EXISTS idx_pending_duration ON pending_files(duration);
"""

UPSERT_SQL = """
INSERT INTO pending_files (
    full_path, extension, codec, bitrate_kbps, size_bytes, duration,
    width, height, frames_per_second, action, created_time, modified_time
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(full_path) DO UPDATE SET
    extension = excluded.extension,
    codec = excluded.codec,
    bitrate_kbps = excluded.bitrate_kbps,
    size_bytes = excluded.size_bytes,
    duration = excluded.duration,
    width = excluded.width,
    height = excluded.height,
    frames_per_second = excluded.frames_per_second,
    action = excluded.action,
    modified_time = excluded.modified_time
"""


class PendingFile(BaseModel):
    """One queue record with its cached probe snapshot."""
    id: int
    full_path: Path
    extension: str
    codec: str
    bitrate_kbps: int
    size_bytes: int
    duration: float
    width: int
    height: int
    frames_per_second: float
    action: PendingAction
    created_time: str
    modified_time: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PendingFile":
        return cls(**{key: row[key] for key in row.keys()})

    def to_video_info(self) -> VideoInfo:
        return VideoInfo(
            codec=self.codec,
            bitrate_kbps=self.bitrate_kbps,
            size_bytes=self.size_bytes,
            duration_seconds=self.duration,
            width=self.width,
            height=self.height,
            frames_per_second=self.frames_per_second,
        )

    def to_processable(self) -> ProcessableFile:
        return ProcessableFile.for_file(VideoFile.from_path(self.full_path), self.to_video_info())


class PendingFileFilter(BaseModel):
    action: Optional[PendingAction] = None
    extensions: List[str] = Field(default_factory=list)
    min_bitrate: Optional[int] = None
    max_bitrate: Optional[int] = None
    min_duration: Optional[float] = None
    max_duration: Optional[float] = None
    limit: Optional[int] = Field(default=None, ge=0)
    sort: Optional[SortOrder] = None


class QueueStats(BaseModel):
    total_files: int = 0
    convert_count: int = 0
    remux_count: int = 0
    total_size: int = 0


class ExtensionStats(BaseModel):
    extension: str
    total: int
    convert_count: int
    remux_count: int
    total_size: int


class PendingQueue:
    """Persisted work queue keyed by absolute file path.

    Owned by a single thread (the run coordinator); not shared with workers.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path is not None else DEFAULT_DB_PATH
        self._conn = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = NORMAL")
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                self._conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            if self._conn is not None:
                self._conn.close()
            raise QueueError(f"Cannot open queue database {self.db_path}: {e}") from e
        logger.debug(f"Queue database opened: {self.db_path}")

    def __enter__(self) -> "PendingQueue":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self._conn.close()

    def upsert(self, path: Path, extension: str, info: VideoInfo, action: PendingAction):
        now = datetime.now().isoformat(timespec="seconds")
        with self._conn:
            self._conn.execute(UPSERT_SQL, (
                str(path),
                extension,
                info.codec,
                info.bitrate_kbps,
                info.size_bytes,
                info.duration_seconds,
                info.width,
                info.height,
                info.frames_per_second,
                PendingAction(action).value,
                now,
                now,
            ))

    def remove(self, path: Path) -> bool:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM pending_files WHERE full_path = ?", (str(path),))
        return cursor.rowcount > 0

    def remove_missing(self) -> int:
        """Drops records whose file no longer exists. Returns the count removed."""
        paths = [row["full_path"] for row in self._conn.execute("SELECT full_path FROM pending_files")]
        missing = [(p,) for p in paths if not Path(p).exists()]
        if not missing:
            return 0
        with self._conn:
            self._conn.executemany("DELETE FROM pending_files WHERE full_path = ?", missing)
        logger.info(f"Removed {len(missing)} missing files from queue")
        return len(missing)

    def get_pending(self, pending_filter: Optional[PendingFileFilter] = None) -> List[PendingFile]:
        pending_filter = pending_filter or PendingFileFilter()
        clauses = []
        params: list = []

        if pending_filter.action is not None:
            clauses.append("action = ?")
            params.append(pending_filter.action.value)
        if pending_filter.extensions:
            placeholders = ", ".join("?" for _ in pending_filter.extensions)
            clauses.append(f"extension IN ({placeholders})")
            params.extend(ext.lower().lstrip(".") for ext in pending_filter.extensions)
        if pending_filter.min_bitrate is not None:
            clauses.append("bitrate_kbps >= ?")
            params.append(pending_filter.min_bitrate)
        if pending_filter.max_bitrate is not None:
            clauses.append("bitrate_kbps <= ?")
            params.append(pending_filter.max_bitrate)
        if pending_filter.min_duration is not None:
            clauses.append("duration >= ?")
            params.append(pending_filter.min_duration)
        if pending_filter.max_duration is not None:
            clauses.append("duration <= ?")
            params.append(pending_filter.max_duration)

        query = "SELECT * FROM pending_files"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        order = pending_filter.sort.sql_order_clause if pending_filter.sort else DEFAULT_ORDER
        query += f" ORDER BY {order}"
        if pending_filter.limit is not None:
            query += " LIMIT ?"
            params.append(pending_filter.limit)

        return [PendingFile.from_row(row) for row in self._conn.execute(query, params)]

    def get_pending_file(self, path: Path) -> Optional[PendingFile]:
        row = self._conn.execute(
            "SELECT * FROM pending_files WHERE full_path = ?", (str(path),)
        ).fetchone()
        return PendingFile.from_row(row) if row else None

    def clear(self) -> int:
        with self._conn:
            cursor = self._conn.execute("DELETE FROM pending_files")
        logger.info(f"Cleared {cursor.rowcount} records from queue")
        return cursor.rowcount

    def stats(self) -> QueueStats:
        row = self._conn.execute(
            """
            SELECT COUNT(*) AS total_files,
                   COALESCE(SUM(CASE WHEN action = 'convert' THEN 1 ELSE 0 END), 0) AS convert_count,
                   COALESCE(SUM(CASE WHEN action = 'remux' THEN 1 ELSE 0 END), 0) AS remux_count,
                   COALESCE(SUM(size_bytes), 0) AS total_size
            FROM pending_files
            """
        ).fetchone()
        return QueueStats(**{key: row[key] for key in row.keys()})

    def extension_stats(self) -> List[ExtensionStats]:
        rows = self._conn.execute(
            """
            SELECT extension,
                   COUNT(*) AS total,
                   SUM(CASE WHEN action = 'convert' THEN 1 ELSE 0 END) AS convert_count,
                   SUM(CASE WHEN action = 'remux' THEN 1 ELSE 0 END) AS remux_count,
                   SUM(size_bytes) AS total_size
            FROM pending_files
            GROUP BY extension
            ORDER BY total DESC, extension
            """
        )
        return [ExtensionStats(**{key: row[key] for key in row.keys()}) for row in rows]
