"""CiderPress SQLite catalog operations."""
import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional, List

from .apple import apple_date_to_unix
from .constants import MAX_PLAUSIBLE_DURATION, TEXT_SLICE_TYPE
from .errors import ConflictError, RecordingIndexError, SliceNotFoundError
from .models import Slice
from .util import row_to_slice

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER PRIMARY KEY,
    applied_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE TABLE IF NOT EXISTS slices (
    id                              INTEGER PRIMARY KEY AUTOINCREMENT,
    original_audio_file_name        TEXT NOT NULL UNIQUE,
    title                           TEXT,
    transcribed                     INTEGER NOT NULL DEFAULT 0,
    audio_file_size                 INTEGER NOT NULL DEFAULT 0,
    audio_file_type                 TEXT NOT NULL DEFAULT '',
    estimated_time_to_transcribe    INTEGER NOT NULL DEFAULT 0,
    audio_time_length_seconds       REAL,
    transcription                   TEXT,
    transcription_time_taken        REAL,
    transcription_word_count        INTEGER,
    transcription_model             TEXT,
    recording_date                  INTEGER
);

CREATE INDEX IF NOT EXISTS idx_slices_transcribed ON slices(transcribed);

CREATE TABLE IF NOT EXISTS action_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    command     TEXT NOT NULL,
    slice_id    INTEGER,
    action      TEXT NOT NULL,
    detail      TEXT
);

CREATE INDEX IF NOT EXISTS idx_action_log_command ON action_log(command);
"""

SLICE_COLUMNS = (
    "original_audio_file_name", "title", "transcribed", "audio_file_size",
    "audio_file_type", "estimated_time_to_transcribe", "audio_time_length_seconds",
    "transcription", "transcription_time_taken", "transcription_word_count",
    "transcription_model", "recording_date",
)


def _slice_values(s: Slice) -> tuple:
    return (
        s.original_audio_file_name, s.title, int(s.transcribed), s.audio_file_size,
        s.audio_file_type, s.estimated_time_to_transcribe, s.audio_time_length_seconds,
        s.transcription, s.transcription_time_taken, s.transcription_word_count,
        s.transcription_model, s.recording_date,
    )


class Catalog:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, *args):
        self.close()

    def init_schema(self):
        self.conn.executescript(SCHEMA_SQL)
        self.conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        self.conn.commit()

    # -- slices ---------------------------------------------------------

    def exists(self, filename: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM slices WHERE original_audio_file_name = ?", (filename,)
        ).fetchone()
        return row is not None

    def insert(self, s: Slice) -> int:
        """Insert a slice in its own transaction and return the new id."""
        placeholders = ", ".join("?" for _ in SLICE_COLUMNS)
        try:
            with self.conn:
                cur = self.conn.execute(
                    f"INSERT INTO slices ({', '.join(SLICE_COLUMNS)}) VALUES ({placeholders})",
                    _slice_values(s),
                )
        except sqlite3.IntegrityError:
            raise ConflictError(s.original_audio_file_name) from None
        s.id = cur.lastrowid
        return s.id

    def get(self, slice_id: int) -> Optional[Slice]:
        row = self.conn.execute(
            "SELECT * FROM slices WHERE id = ?", (slice_id,)
        ).fetchone()
        return row_to_slice(row) if row else None

    def list_all(self) -> List[Slice]:
        rows = self.conn.execute("SELECT * FROM slices ORDER BY id ASC").fetchall()
        return [row_to_slice(r) for r in rows]

    def list_pending_ids(self) -> List[int]:
        rows = self.conn.execute(
            "SELECT id FROM slices WHERE transcribed = 0 AND audio_file_type != ? ORDER BY id ASC",
            (TEXT_SLICE_TYPE,),
        ).fetchall()
        return [r["id"] for r in rows]

    def list_missing_duration(self) -> List[Slice]:
        rows = self.conn.execute(
            "SELECT * FROM slices WHERE audio_time_length_seconds IS NULL "
            "AND audio_file_type != ? ORDER BY id ASC",
            (TEXT_SLICE_TYPE,),
        ).fetchall()
        return [row_to_slice(r) for r in rows]

    def _check_name_free(self, slice_id: int, filename: str):
        clash = self.conn.execute(
            "SELECT id FROM slices WHERE original_audio_file_name = ? AND id != ?",
            (filename, slice_id),
        ).fetchone()
        if clash:
            raise ConflictError(filename)

    def update(self, slice_id: int, s: Slice):
        """Overwrite every field of an existing slice."""
        self._check_name_free(slice_id, s.original_audio_file_name)
        assignments = ", ".join(f"{c} = ?" for c in SLICE_COLUMNS)
        with self.conn:
            cur = self.conn.execute(
                f"UPDATE slices SET {assignments} WHERE id = ?",
                _slice_values(s) + (slice_id,),
            )
        if cur.rowcount == 0:
            raise SliceNotFoundError(slice_id)

    def rename(self, slice_id: int, new_filename: str):
        self._check_name_free(slice_id, new_filename)
        with self.conn:
            cur = self.conn.execute(
                "UPDATE slices SET original_audio_file_name = ? WHERE id = ?",
                (new_filename, slice_id),
            )
        if cur.rowcount == 0:
            raise SliceNotFoundError(slice_id)

    def set_title(self, slice_id: int, title: Optional[str]):
        with self.conn:
            cur = self.conn.execute(
                "UPDATE slices SET title = ? WHERE id = ?", (title, slice_id)
            )
        if cur.rowcount == 0:
            raise SliceNotFoundError(slice_id)

    def update_transcription(self, slice_id: int, text: str, time_taken: float,
                             word_count: int, model: str):
        """Record a finished transcription. All five fields change together."""
        with self.conn:
            cur = self.conn.execute("""
                UPDATE slices SET
                    transcription = ?,
                    transcription_time_taken = ?,
                    transcription_word_count = ?,
                    transcription_model = ?,
                    transcribed = 1
                WHERE id = ?
            """, (text, time_taken, word_count, model, slice_id))
        if cur.rowcount == 0:
            raise SliceNotFoundError(slice_id)

    def update_duration(self, slice_id: int, seconds: Optional[float]):
        with self.conn:
            self.conn.execute(
                "UPDATE slices SET audio_time_length_seconds = ? WHERE id = ?",
                (seconds, slice_id),
            )

    def clear_corrupt_durations(self) -> int:
        with self.conn:
            cur = self.conn.execute(
                "UPDATE slices SET audio_time_length_seconds = NULL "
                "WHERE audio_time_length_seconds > ?",
                (MAX_PLAUSIBLE_DURATION,),
            )
        return cur.rowcount

    def clear_all(self) -> int:
        with self.conn:
            cur = self.conn.execute("DELETE FROM slices")
        return cur.rowcount

    def historical_throughput(self) -> Optional[float]:
        """Bytes of audio transcribed per second of processing, if known."""
        row = self.conn.execute("""
            SELECT CAST(SUM(audio_file_size) AS REAL) / SUM(transcription_time_taken) AS rate
            FROM slices
            WHERE transcribed = 1
              AND transcription_time_taken > 0
              AND audio_file_size > 0
        """).fetchone()
        rate = row["rate"] if row else None
        return rate if rate and rate > 0 else None

    # -- recording index ------------------------------------------------

    def _has_recording_index(self) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'ZCLOUDRECORDING'"
        ).fetchone()
        return row is not None

    def copy_recording_index(self, index_path: Path) -> int:
        """Copy new ZCLOUDRECORDING rows from the index. Returns rows added."""
        self.conn.commit()
        try:
            self.conn.execute("ATTACH DATABASE ? AS idx", (str(index_path),))
        except sqlite3.Error as e:
            raise RecordingIndexError(f"Cannot open recording index {index_path}: {e}") from e
        try:
            with self.conn:
                self.conn.execute(
                    "CREATE TABLE IF NOT EXISTS main.ZCLOUDRECORDING AS "
                    "SELECT * FROM idx.ZCLOUDRECORDING WHERE 0"
                )
                cur = self.conn.execute(
                    "INSERT OR IGNORE INTO main.ZCLOUDRECORDING "
                    "SELECT * FROM idx.ZCLOUDRECORDING "
                    "WHERE Z_PK NOT IN (SELECT Z_PK FROM main.ZCLOUDRECORDING)"
                )
            added = cur.rowcount
        except sqlite3.Error as e:
            raise RecordingIndexError(f"Cannot read recording index {index_path}: {e}") from e
        finally:
            self.conn.execute("DETACH DATABASE idx")
        return added

    def lookup_recording_date(self, filename: str) -> Optional[int]:
        """Unix timestamp of the recording whose path ends with filename."""
        if not self._has_recording_index():
            return None
        row = self.conn.execute(
            "SELECT ZDATE FROM ZCLOUDRECORDING "
            "WHERE ZDATE IS NOT NULL AND (ZPATH = ? OR substr(ZPATH, -?) = ?) "
            "LIMIT 1",
            (filename, len(filename) + 1, "/" + filename),
        ).fetchone()
        if row is None:
            return None
        return apple_date_to_unix(row["ZDATE"])

    def backfill_recording_dates(self) -> int:
        if not self._has_recording_index():
            return 0
        rows = self.conn.execute(
            "SELECT id, original_audio_file_name FROM slices WHERE recording_date IS NULL"
        ).fetchall()
        updated = 0
        with self.conn:
            for row in rows:
                date = self.lookup_recording_date(row["original_audio_file_name"])
                if date is not None:
                    self.conn.execute(
                        "UPDATE slices SET recording_date = ? WHERE id = ?",
                        (date, row["id"]),
                    )
                    updated += 1
        return updated

    # -- bookkeeping ----------------------------------------------------

    def log_action(self, command: str, action: str,
                   slice_id: Optional[int] = None, detail: Optional[dict] = None):
        self.conn.execute(
            "INSERT INTO action_log (command, slice_id, action, detail) VALUES (?, ?, ?, ?)",
            (command, slice_id, action, json.dumps(detail) if detail else None),
        )
        self.conn.commit()

    def get_stats(self) -> dict:
        row = self.conn.execute("""
            SELECT
                COUNT(*) as total,
                COUNT(CASE WHEN transcribed = 1 THEN 1 END) as transcribed,
                COALESCE(SUM(audio_time_length_seconds), 0) / 3600.0 as total_hours,
                COALESCE(SUM(audio_file_size), 0) as total_bytes,
                COALESCE(MAX(audio_file_size), 0) as largest_bytes,
                COALESCE(AVG(audio_file_size), 0) as average_bytes
            FROM slices
        """).fetchone()
        stats = dict(row)

        buckets = self.conn.execute("""
            SELECT
                CASE
                    WHEN audio_time_length_seconds IS NULL THEN 'unknown'
                    WHEN audio_time_length_seconds < 60 THEN 'under 1 min'
                    WHEN audio_time_length_seconds < 300 THEN '1-5 min'
                    WHEN audio_time_length_seconds < 900 THEN '5-15 min'
                    WHEN audio_time_length_seconds < 3600 THEN '15-60 min'
                    ELSE 'over 1 hour'
                END AS bucket,
                COUNT(*) AS n
            FROM slices
            WHERE audio_file_type != ?
            GROUP BY bucket
        """, (TEXT_SLICE_TYPE,)).fetchall()
        stats["by_length"] = {r["bucket"]: r["n"] for r in buckets}

        years = self.conn.execute("""
            SELECT strftime('%Y', recording_date, 'unixepoch') AS year, COUNT(*) AS n
            FROM slices
            WHERE recording_date IS NOT NULL
            GROUP BY year
            ORDER BY year
        """).fetchall()
        stats["by_year"] = {r["year"]: r["n"] for r in years}

        speed = self.conn.execute("""
            SELECT SUM(transcription_time_taken) / SUM(audio_time_length_seconds) * 600 AS per_ten
            FROM slices
            WHERE transcribed = 1
              AND transcription_time_taken > 0
              AND audio_time_length_seconds > 0
        """).fetchone()
        stats["seconds_per_ten_minutes"] = speed["per_ten"]
        return stats
