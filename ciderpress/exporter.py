"""Export transcripts and audio out of managed storage."""
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

from .config import Config
from .db import Catalog
from .errors import CiderPressError
from .models import Slice
from .util import strip_html_tags

logger = logging.getLogger(__name__)

SEPARATOR = "\n-------\n\n"


def generate_export_block(s: Slice, exported_at: str) -> str:
    """Plain-text block for a single transcript."""
    lines = [
        f"Title: {s.display_name}",
        f"Export Date: {exported_at}",
        f"Word Count: {s.transcription_word_count or 0}",
        "",
        strip_html_tags(s.transcription or "").strip(),
        "",
    ]
    return "\n".join(lines)


def _select(catalog: Catalog, slice_ids: Iterable[int]) -> List[Slice]:
    selected = []
    for sid in slice_ids:
        s = catalog.get(sid)
        if s is None:
            logger.warning("Skipping unknown slice %s", sid)
            continue
        selected.append(s)
    return selected


def export_transcripts(config: Config, catalog: Catalog, slice_ids: Iterable[int]) -> Path:
    slices = [s for s in _select(catalog, slice_ids) if s.transcribed and s.transcription]
    if not slices:
        raise CiderPressError("None of the selected slices have a transcript")

    now = datetime.now()
    exported_at = now.strftime("%Y-%m-%d %H:%M:%S")
    content = SEPARATOR.join(generate_export_block(s, exported_at) for s in slices)

    config.exports_dir.mkdir(parents=True, exist_ok=True)
    out_path = config.exports_dir / f"transcripts_export_{now.strftime('%Y%m%d_%H%M%S')}.txt"
    out_path.write_text(content, encoding="utf-8")

    catalog.log_action("export", "transcripts", detail={
        "path": str(out_path), "slices": [s.id for s in slices],
    })
    return out_path


def export_audio(config: Config, catalog: Catalog, slice_ids: Iterable[int],
                 dest_dir: Path) -> int:
    """Copy managed audio files for the selection into dest_dir."""
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    copied = 0
    for s in _select(catalog, slice_ids):
        if s.is_text:
            continue
        src = config.audio_dir / s.original_audio_file_name
        if not src.exists():
            logger.warning("Audio missing for slice %s: %s", s.id, src)
            continue
        shutil.copy2(src, dest_dir / s.original_audio_file_name)
        copied += 1
    catalog.log_action("export", "audio", detail={"dest": str(dest_dir), "copied": copied})
    return copied
