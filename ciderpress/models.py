"""Data models."""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .constants import (
    BYTES_PER_AUDIO_MINUTE, PROCESSING_SECONDS_PER_TEN_MINUTES, TEN_MINUTES,
    TEXT_SLICE_TYPE,
)


def estimate_transcription_time(file_size: int, duration: Optional[float] = None) -> int:
    """Seconds of processing expected for a recording, never below 1."""
    if duration is not None and duration > 0:
        estimate = duration / TEN_MINUTES * PROCESSING_SECONDS_PER_TEN_MINUTES
    else:
        minutes = max(file_size, 0) / BYTES_PER_AUDIO_MINUTE
        estimate = minutes / 10 * PROCESSING_SECONDS_PER_TEN_MINUTES
    return max(1, math.ceil(estimate))


@dataclass
class Slice:
    original_audio_file_name: str
    id: Optional[int] = None
    title: Optional[str] = None
    transcribed: bool = False
    audio_file_size: int = 0
    audio_file_type: str = ""
    estimated_time_to_transcribe: int = 0
    audio_time_length_seconds: Optional[float] = None
    transcription: Optional[str] = None
    transcription_time_taken: Optional[float] = None
    transcription_word_count: Optional[int] = None
    transcription_model: Optional[str] = None
    recording_date: Optional[int] = None  # Unix seconds

    @property
    def is_text(self) -> bool:
        return self.audio_file_type == TEXT_SLICE_TYPE

    @property
    def display_name(self) -> str:
        return self.title or self.original_audio_file_name

    @property
    def duration_display(self) -> str:
        if self.audio_time_length_seconds is None:
            return "unknown"
        total = int(self.audio_time_length_seconds)
        h, remainder = divmod(total, 3600)
        m, s = divmod(remainder, 60)
        if h > 0:
            return f"{h}:{m:02d}:{s:02d}"
        return f"{m}:{s:02d}"

    @property
    def recorded_date(self) -> Optional[str]:
        if self.recording_date is None:
            return None
        return datetime.fromtimestamp(self.recording_date, tz=timezone.utc).strftime("%Y-%m-%d")


@dataclass
class MigrationSummary:
    copied: int = 0
    skipped: int = 0
    errors: int = 0
    total_size_bytes: int = 0


@dataclass
class MigrationProgress:
    total_recordings: int = 0
    processed_recordings: int = 0
    failed_recordings: int = 0
    current_recording: Optional[str] = None
    current_step: str = "Initializing"
    total_size_bytes: int = 0
    processed_size_bytes: int = 0


@dataclass
class TranscriptionProgress:
    total_slices: int = 0
    completed_slices: int = 0
    failed_slices: int = 0
    current_slice_id: Optional[int] = None
    current_slice_name: Optional[str] = None
    current_step: str = "Starting"
    estimated_total_seconds: int = 0
    elapsed_seconds: float = 0.0
    is_active: bool = True
    current_slice_elapsed_seconds: float = 0.0
    current_slice_estimated_seconds: int = 0
    current_slice_file_size: int = 0
    bytes_per_second_rate: float = 0.0

    @property
    def finished_slices(self) -> int:
        return self.completed_slices + self.failed_slices


@dataclass
class SliceOutcome:
    slice_id: int
    status: str  # done | failed | skipped | cancelled
    error: Optional[str] = None
    word_count: Optional[int] = None
    elapsed_seconds: Optional[float] = None
