"""Apple Voice Memos recording index (CloudRecordings.db) helpers."""
import sqlite3
from pathlib import Path

from .constants import APPLE_EPOCH_OFFSET
from .errors import RecordingIndexError, SourcePermissionError


def apple_date_to_unix(apple_timestamp: float) -> int:
    """Convert Apple epoch timestamp to Unix seconds."""
    return int(apple_timestamp + APPLE_EPOCH_OFFSET)


def check_recording_index(index_path: Path) -> bool:
    """
    Return True if the recording index is present and readable.

    A missing index is normal (recordings copied from elsewhere) and
    returns False. A permission failure raises SourcePermissionError, which
    is what macOS privacy controls produce. Anything else that keeps us from
    reading it raises RecordingIndexError. Either way the migration stops
    before copying files.
    """
    try:
        with open(index_path, "rb") as f:
            header = f.read(16)
    except FileNotFoundError:
        return False
    except PermissionError as e:
        raise SourcePermissionError(Path(index_path).parent) from e
    except OSError as e:
        raise RecordingIndexError(f"Cannot read recording index {index_path}: {e}") from e

    if header and not header.startswith(b"SQLite format 3"):
        raise RecordingIndexError(f"Recording index is not a SQLite database: {index_path}")
    return True


def count_recordings(index_path: Path) -> int:
    """Count rows in the index, opened read-only so Voice Memos is never locked."""
    uri = f"file:{index_path}?mode=ro&immutable=1"
    conn = sqlite3.connect(uri, uri=True)
    try:
        return conn.execute("SELECT COUNT(*) FROM ZCLOUDRECORDING").fetchone()[0]
    except sqlite3.Error as e:
        raise RecordingIndexError(f"Cannot read recording index {index_path}: {e}") from e
    finally:
        conn.close()
