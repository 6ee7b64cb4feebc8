"""Thread-safe progress snapshots shared between a batch worker and its observer.

A cell is owned by whoever starts the batch and handed to the engine.
The worker mutates it; readers only ever see copies.
"""
import copy
import threading
import time
from typing import Optional

from .models import MigrationProgress, TranscriptionProgress


class ProgressCell:
    def __init__(self):
        self._lock = threading.Lock()
        self._state = None

    def start(self, state):
        with self._lock:
            self._state = state

    def update(self, **changes):
        with self._lock:
            if self._state is None:
                return
            for key, value in changes.items():
                setattr(self._state, key, value)

    def increment(self, **deltas):
        with self._lock:
            if self._state is None:
                return
            for key, delta in deltas.items():
                setattr(self._state, key, getattr(self._state, key) + delta)

    def snapshot(self):
        with self._lock:
            return copy.copy(self._state) if self._state is not None else None

    def clear(self):
        with self._lock:
            self._state = None


class MigrationProgressCell(ProgressCell):
    def begin(self):
        self.start(MigrationProgress())

    def snapshot(self) -> Optional[MigrationProgress]:
        return super().snapshot()


class TranscriptionProgressCell(ProgressCell):
    def __init__(self):
        super().__init__()
        self._batch_started: Optional[float] = None
        self._item_started: Optional[float] = None

    def begin(self, total: int, estimated_total_seconds: int, bytes_per_second_rate: float):
        self.start(TranscriptionProgress(
            total_slices=total,
            estimated_total_seconds=estimated_total_seconds,
            bytes_per_second_rate=bytes_per_second_rate,
        ))
        with self._lock:
            self._batch_started = time.monotonic()
            self._item_started = None

    def begin_item(self, slice_id: int, name: str, estimated_seconds: int, file_size: int):
        self.update(
            current_slice_id=slice_id,
            current_slice_name=name,
            current_slice_estimated_seconds=estimated_seconds,
            current_slice_file_size=file_size,
            current_step="Preparing",
        )
        with self._lock:
            self._item_started = time.monotonic()

    def snapshot(self) -> Optional[TranscriptionProgress]:
        with self._lock:
            if self._state is None:
                return None
            snap = copy.copy(self._state)
            if snap.is_active:
                now = time.monotonic()
                if self._batch_started is not None:
                    snap.elapsed_seconds = now - self._batch_started
                if self._item_started is not None:
                    snap.current_slice_elapsed_seconds = now - self._item_started
            return snap

    def finish(self):
        """Freeze elapsed time and mark the batch inactive."""
        with self._lock:
            if self._state is None:
                return
            if self._batch_started is not None:
                self._state.elapsed_seconds = time.monotonic() - self._batch_started
            self._state.is_active = False
            self._state.current_step = "Complete"
            self._state.current_slice_id = None
            self._state.current_slice_name = None
            self._item_started = None
