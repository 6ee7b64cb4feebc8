"""Catalog repair and housekeeping."""
import logging
import re
from pathlib import Path
from typing import Callable, Optional

from .config import Config
from .constants import TITLE_STRIP_EXTENSIONS
from .db import Catalog
from .errors import ConflictError, SliceNotFoundError
from .probe import probe_duration

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"(\d{8})")


def populate_audio_durations(config: Config, catalog: Catalog,
                             probe: Callable[[Path], Optional[float]] = probe_duration) -> dict:
    """Clear impossible durations, then probe every slice still missing one."""
    counts = {"cleared": catalog.clear_corrupt_durations(), "updated": 0,
              "missing_file": 0, "unknown": 0}
    if counts["cleared"]:
        logger.info("Cleared %d corrupt durations", counts["cleared"])

    for s in catalog.list_missing_duration():
        path = config.audio_dir / s.original_audio_file_name
        if not path.exists():
            counts["missing_file"] += 1
            continue
        duration = probe(path)
        if duration is None:
            counts["unknown"] += 1
            continue
        catalog.update_duration(s.id, duration)
        counts["updated"] += 1

    catalog.log_action("durations", "complete", detail=counts)
    return counts


def backfill_recording_dates(catalog: Catalog) -> int:
    updated = catalog.backfill_recording_dates()
    catalog.log_action("backfill_dates", "complete", detail={"updated": updated})
    return updated


def derive_title(filename: str) -> str:
    """2024-03-09 for '20240309 101500.m4a', otherwise the bare filename."""
    match = _DATE_RE.search(filename)
    if match:
        d = match.group(1)
        return f"{d[:4]}-{d[4:6]}-{d[6:]}"
    for ext in TITLE_STRIP_EXTENSIONS:
        if filename.lower().endswith(ext):
            return filename[:-len(ext)]
    return filename


def auto_populate_titles(catalog: Catalog) -> int:
    """Give every untitled slice a unique title. Existing titles are kept."""
    slices = catalog.list_all()
    taken = {s.title for s in slices if s.title}
    updated = 0
    for s in slices:
        if s.title:
            continue
        base = derive_title(s.original_audio_file_name)
        title = base
        n = 2
        while title in taken:
            title = f"{base} ({n})"
            n += 1
        taken.add(title)
        catalog.set_title(s.id, title)
        updated += 1
    catalog.log_action("titles", "complete", detail={"updated": updated})
    return updated


def rename_slice(config: Config, catalog: Catalog, slice_id: int, new_filename: str):
    """Rename a slice and its managed audio file together.

    The catalog is renamed first so a name clash fails before anything
    moves on disk. If the file move fails the catalog rename is undone.
    """
    s = catalog.get(slice_id)
    if s is None:
        raise SliceNotFoundError(slice_id)
    old_filename = s.original_audio_file_name
    catalog.rename(slice_id, new_filename)

    old_path = config.audio_dir / old_filename
    if s.is_text or not old_path.exists():
        return
    new_path = config.audio_dir / new_filename
    try:
        if new_path.exists():
            raise ConflictError(new_filename)
        old_path.rename(new_path)
    except (OSError, ConflictError):
        catalog.rename(slice_id, old_filename)
        raise
