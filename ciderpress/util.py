"""Utility functions."""
import json
import re
import shutil
import sqlite3
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional

from .constants import AUTONAME_MAX_CHARS, FFMPEG_SEARCH_DIRS, INVALID_NAME_CHARS
from .models import Slice

_TAG_RE = re.compile(r"<[^>]+>")


def write_jsonl(path: Path, category: str, action: str,
                slice_id: Optional[int] = None, detail: Optional[dict] = None,
                level: str = "info"):
    """Append a single line to the JSONL event journal."""
    entry = {
        "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "lvl": level,
        "cat": category,
        "act": action,
    }
    if slice_id is not None:
        entry["id"] = slice_id
    if detail:
        entry["d"] = detail
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")


def row_to_slice(row: sqlite3.Row) -> Slice:
    """Convert a sqlite3.Row to a Slice dataclass."""
    return Slice(
        id=row["id"],
        original_audio_file_name=row["original_audio_file_name"],
        title=row["title"],
        transcribed=bool(row["transcribed"]),
        audio_file_size=row["audio_file_size"] or 0,
        audio_file_type=row["audio_file_type"] or "",
        estimated_time_to_transcribe=row["estimated_time_to_transcribe"] or 0,
        audio_time_length_seconds=row["audio_time_length_seconds"],
        transcription=row["transcription"],
        transcription_time_taken=row["transcription_time_taken"],
        transcription_word_count=row["transcription_word_count"],
        transcription_model=row["transcription_model"],
        recording_date=row["recording_date"],
    )


def word_count(text: str) -> int:
    return len(text.split())


def sanitize_name(text: str, max_chars: int = AUTONAME_MAX_CHARS) -> str:
    """First max_chars characters with path-hostile characters removed."""
    cut = text[:max_chars]
    cleaned = "".join(c for c in cut if c not in INVALID_NAME_CHARS)
    return cleaned.strip()


def strip_html_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def format_file_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


def format_seconds(seconds: float) -> str:
    total = int(seconds)
    h, remainder = divmod(total, 3600)
    m, s = divmod(remainder, 60)
    if h > 0:
        return f"{h}h{m:02d}m"
    if m > 0:
        return f"{m}m{s:02d}s"
    return f"{s}s"


def format_count_line(counts: dict) -> str:
    """Format a counts dict as a single summary line."""
    parts = [f"{v} {k}" for k, v in counts.items() if v > 0]
    return ", ".join(parts) if parts else "no changes"


def find_tool(name: str) -> Optional[str]:
    """Locate an ffmpeg-family binary on PATH or in the usual Homebrew dirs."""
    found = shutil.which(name)
    if found:
        return found
    for d in FFMPEG_SEARCH_DIRS:
        candidate = Path(d) / name
        if candidate.exists():
            return str(candidate)
    return None
