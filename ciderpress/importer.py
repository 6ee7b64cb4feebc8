"""Manual additions to the catalog: typed notes, single audio files, text files."""
import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import Config
from .constants import TEXT_SLICE_TYPE
from .db import Catalog
from .errors import AudioFileMissingError, ConflictError, CopyVerificationError
from .models import Slice, estimate_transcription_time
from .probe import probe_duration
from .util import word_count

logger = logging.getLogger(__name__)


def _text_slice(filename: str, title: Optional[str], content: str, model: str) -> Slice:
    return Slice(
        original_audio_file_name=filename,
        title=title,
        transcribed=True,
        audio_file_size=len(content.encode("utf-8")),
        audio_file_type=TEXT_SLICE_TYPE,
        estimated_time_to_transcribe=0,
        transcription=content,
        transcription_time_taken=0,
        transcription_word_count=word_count(content),
        transcription_model=model,
        recording_date=int(datetime.now().timestamp()),
    )


def create_text_slice(catalog: Catalog, title: Optional[str], content: str) -> int:
    """Store a typed note as an already-transcribed slice."""
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"text_entry_{stamp}_{uuid.uuid4().hex[:8]}.txt"
    slice_id = catalog.insert(_text_slice(filename, title, content, "manual"))
    catalog.log_action("import", "text_entry", slice_id=slice_id)
    return slice_id


def import_text_file(catalog: Catalog, path: Path, title: Optional[str] = None) -> int:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    content = path.read_text(encoding="utf-8")
    if catalog.exists(path.name):
        raise ConflictError(path.name)
    slice_id = catalog.insert(_text_slice(path.name, title or path.stem, content, "imported"))
    catalog.log_action("import", "text_file", slice_id=slice_id, detail={"source": str(path)})
    return slice_id


def import_audio_file(config: Config, catalog: Catalog, path: Path,
                      title: Optional[str] = None,
                      probe: Callable[[Path], Optional[float]] = probe_duration) -> int:
    """Copy one audio file into managed storage and catalog it."""
    path = Path(path)
    if not path.exists():
        raise AudioFileMissingError(path)
    if catalog.exists(path.name):
        raise ConflictError(path.name)

    config.audio_dir.mkdir(parents=True, exist_ok=True)
    dest = config.audio_dir / path.name
    shutil.copy2(path, dest)
    size = path.stat().st_size
    if dest.stat().st_size != size:
        raise CopyVerificationError(dest, size, dest.stat().st_size)

    duration = probe(dest)
    slice_id = catalog.insert(Slice(
        original_audio_file_name=path.name,
        title=title,
        audio_file_size=size,
        audio_file_type=path.suffix.lower().lstrip("."),
        estimated_time_to_transcribe=estimate_transcription_time(size, duration),
        audio_time_length_seconds=duration,
        recording_date=int(path.stat().st_mtime),
    ))
    catalog.log_action("import", "audio_file", slice_id=slice_id, detail={"source": str(path)})
    logger.info("Imported %s as slice %d", path.name, slice_id)
    return slice_id
