"""Batch transcription of cataloged slices.

Designed for:
- Sequential processing: one slice at a time, in the order requested
- Crash safety: each transcript is committed as soon as it is produced
- Isolation: a failed slice is counted and logged, the batch carries on
- Live progress: a TranscriptionProgressCell an observer can poll
"""
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .config import Config
from .constants import DEFAULT_BYTES_PER_SECOND
from .db import Catalog
from .engines import DownloadEvent, Segment
from .errors import AudioFileMissingError, ConflictError, EngineError, SliceNotFoundError
from .events import EventLog
from .maintenance import rename_slice
from .models import Slice, SliceOutcome, estimate_transcription_time
from .progress import TranscriptionProgressCell
from .transcoder import convert_to_canonical, extract_prefix, is_canonical
from .util import format_count_line, sanitize_name, word_count

logger = logging.getLogger(__name__)


class TranscriptionOrchestrator:
    def __init__(self, config: Config, catalog: Catalog, engine,
                 progress: Optional[TranscriptionProgressCell] = None,
                 events: Optional[EventLog] = None,
                 converter: Callable[[Path, Path], Path] = convert_to_canonical,
                 extractor: Callable[..., Path] = extract_prefix,
                 canonical_check: Callable[[Path], bool] = is_canonical):
        self.config = config
        self.catalog = catalog
        self.engine = engine
        self.progress = progress or TranscriptionProgressCell()
        self.events = events or EventLog()
        self.converter = converter
        self.extractor = extractor
        self.canonical_check = canonical_check

    def run(self, slice_ids: Iterable[int], model: Optional[str] = None,
            cancel: Optional[threading.Event] = None) -> List[SliceOutcome]:
        """Transcribe slice_ids in order. Returns one outcome per requested id."""
        model = model or self.config.whisper_model
        ids = list(slice_ids)
        outcomes: List[Optional[SliceOutcome]] = [None] * len(ids)
        queue = []

        for pos, sid in enumerate(ids):
            s = self.catalog.get(sid)
            if s is not None and s.is_text:
                outcomes[pos] = SliceOutcome(sid, "skipped", "text slice")
            elif s is not None and s.transcribed and self.config.skip_already_transcribed:
                outcomes[pos] = SliceOutcome(sid, "skipped", "already transcribed")
            else:
                queue.append((pos, sid, s))

        if not queue:
            self.events.info("transcribe", "empty", "Nothing to transcribe")
            return outcomes

        rate = self.catalog.historical_throughput() or DEFAULT_BYTES_PER_SECOND
        estimated_total = sum(self._estimate(s) for _, _, s in queue if s is not None)
        self.progress.begin(len(queue), estimated_total, rate)
        self.catalog.log_action("transcribe", "start", detail={
            "slices": len(queue), "model": model, "estimated_seconds": estimated_total,
        })
        self.events.info("transcribe", "start",
                         f"Transcribing {len(queue)} slices with {model} (est. {estimated_total}s)")

        counts = {"done": 0, "failed": 0, "cancelled": 0}
        try:
            for pos, sid, s in queue:
                if cancel is not None and cancel.is_set():
                    outcomes[pos] = SliceOutcome(sid, "cancelled")
                    counts["cancelled"] += 1
                    continue
                outcome = self._transcribe_one(sid, s, model)
                outcomes[pos] = outcome
                counts[outcome.status] += 1
        finally:
            self.progress.finish()

        self.catalog.log_action("transcribe", "complete", detail=counts)
        self.events.info("transcribe", "complete", f"Batch complete: {format_count_line(counts)}")
        return outcomes

    @staticmethod
    def _estimate(s: Slice) -> int:
        if s.estimated_time_to_transcribe >= 1:
            return s.estimated_time_to_transcribe
        return estimate_transcription_time(s.audio_file_size, s.audio_time_length_seconds)

    def _transcribe_one(self, sid: int, s: Optional[Slice], model: str) -> SliceOutcome:
        started = time.monotonic()
        try:
            if s is None:
                raise SliceNotFoundError(sid)
            self.progress.begin_item(sid, s.display_name, self._estimate(s), s.audio_file_size)

            audio_path = self.config.audio_dir / s.original_audio_file_name
            if not audio_path.exists():
                raise AudioFileMissingError(audio_path)

            text = self.transcribe_file(audio_path, model, slice_id=sid)
            elapsed = time.monotonic() - started
            count = word_count(text)

            self.progress.update(current_step="Saving")
            self.config.transcript_dir.mkdir(parents=True, exist_ok=True)
            (self.config.transcript_dir / f"{sid}.txt").write_text(text, encoding="utf-8")
            self.catalog.update_transcription(sid, text, round(elapsed, 3), count, model)
            self.progress.increment(completed_slices=1)
            self.events.info("transcribe", "done",
                             f"Transcribed {s.display_name}: {count} words in {elapsed:.1f}s",
                             slice_id=sid, detail={"words": count, "seconds": round(elapsed, 3)})
            return SliceOutcome(sid, "done", word_count=count, elapsed_seconds=elapsed)
        except Exception as e:
            self.progress.increment(failed_slices=1)
            name = s.display_name if s is not None else str(sid)
            self.events.error("transcribe", "failed", f"Failed to transcribe {name}: {e}",
                              slice_id=sid, detail={"error": str(e)})
            return SliceOutcome(sid, "failed", error=str(e),
                                elapsed_seconds=time.monotonic() - started)

    def transcribe_file(self, audio_path: Path, model: str,
                        slice_id: Optional[int] = None) -> str:
        """Convert if needed, run the engine, and return the joined text."""
        intermediate = None
        source = audio_path
        if not self.canonical_check(audio_path):
            self.progress.update(current_step="Converting audio")
            intermediate = self.converter(audio_path, self.config.work_dir)
            source = intermediate
        try:
            attempts = 1 + max(0, self.config.transcription_retries)
            for attempt in range(1, attempts + 1):
                try:
                    return self._collect(source, model, slice_id)
                except EngineError as e:
                    if attempt >= attempts:
                        raise
                    self.events.warning("transcribe", "retry",
                                        f"Engine failed (attempt {attempt}/{attempts}): {e}",
                                        slice_id=slice_id)
                    time.sleep(self.config.retry_delay * attempt)
        finally:
            if (intermediate is not None and not self.config.keep_intermediate_audio
                    and not self._is_managed(intermediate)):
                intermediate.unlink(missing_ok=True)

    def _is_managed(self, path: Path) -> bool:
        """True for files in the managed audio folder, which belong to slices."""
        return Path(path).resolve().parent == self.config.audio_dir.resolve()

    def _collect(self, source: Path, model: str, slice_id: Optional[int]) -> str:
        self.progress.update(current_step="Transcribing")
        parts = []
        for event in self.engine.transcribe(source, model):
            if isinstance(event, Segment):
                text = event.text.strip()
                if text:
                    parts.append(text)
            elif isinstance(event, DownloadEvent):
                self._on_download(event, slice_id)
        return " ".join(parts)

    def _on_download(self, event: DownloadEvent, slice_id: Optional[int]):
        if event.status == "failed":
            self.events.error("model", "download_failed",
                              f"Model download failed for {event.model}: {event.error}",
                              slice_id=slice_id)
            return
        self.progress.update(current_step=f"Downloading model ({event.status})")
        pct = f" {event.percentage:.0f}%" if event.percentage is not None else ""
        self.events.info("model", f"download_{event.status}",
                         f"Model {event.model}: {event.status}{pct}", slice_id=slice_id)

    # -- auto-naming ----------------------------------------------------

    def suggest_name(self, slice_id: int, seconds: Optional[int] = None,
                     model: Optional[str] = None) -> str:
        """Name a slice from what is said in its first few seconds."""
        s = self.catalog.get(slice_id)
        if s is None:
            raise SliceNotFoundError(slice_id)
        audio_path = self.config.audio_dir / s.original_audio_file_name
        if not audio_path.exists():
            raise AudioFileMissingError(audio_path)

        sample = self.extractor(audio_path, seconds or self.config.autoname_seconds,
                                output_dir=self.config.work_dir)
        try:
            text = self.transcribe_file(sample, model or self.config.whisper_model, slice_id)
        finally:
            if not self._is_managed(Path(sample)):
                Path(sample).unlink(missing_ok=True)

        return sanitize_name(text) or f"Slice {slice_id}"

    def rename_from_audio(self, slice_ids: Iterable[int], seconds: Optional[int] = None,
                          model: Optional[str] = None) -> Dict[str, int]:
        ids = list(slice_ids)
        seconds = seconds or self.config.autoname_seconds
        per_item = estimate_transcription_time(0, seconds)
        rate = self.catalog.historical_throughput() or DEFAULT_BYTES_PER_SECOND
        counts = {"renamed": 0, "unchanged": 0, "conflict": 0, "failed": 0}

        self.progress.begin(len(ids), per_item * len(ids), rate)
        try:
            for sid in ids:
                try:
                    s = self.catalog.get(sid)
                    if s is None:
                        raise SliceNotFoundError(sid)
                    self.progress.begin_item(sid, s.display_name, per_item, s.audio_file_size)
                    name = self.suggest_name(sid, seconds, model)
                    new_filename = name + Path(s.original_audio_file_name).suffix
                    if new_filename == s.original_audio_file_name:
                        counts["unchanged"] += 1
                        self.progress.increment(completed_slices=1)
                        continue
                    self.progress.update(current_step="Renaming")
                    rename_slice(self.config, self.catalog, sid, new_filename)
                    self.catalog.set_title(sid, name)
                    counts["renamed"] += 1
                    self.progress.increment(completed_slices=1)
                    self.events.info("autoname", "rename",
                                     f"Renamed {s.original_audio_file_name} -> {new_filename}",
                                     slice_id=sid)
                except ConflictError as e:
                    counts["conflict"] += 1
                    self.progress.increment(failed_slices=1)
                    self.events.warning("autoname", "conflict", str(e), slice_id=sid)
                except Exception as e:
                    counts["failed"] += 1
                    self.progress.increment(failed_slices=1)
                    self.events.error("autoname", "failed", f"Could not name slice {sid}: {e}",
                                      slice_id=sid)
        finally:
            self.progress.finish()
        return counts
