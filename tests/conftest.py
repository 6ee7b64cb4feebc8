"""
Shared fixtures: a throwaway CiderPress home, an open catalog, and fakes.
"""
import math
import os
import sqlite3
import struct
import wave
from pathlib import Path
from typing import List, Optional

import pytest

from ciderpress.config import Config
from ciderpress.db import Catalog
from ciderpress.engines import Segment
from ciderpress.errors import EngineError
from ciderpress.events import EventLog
from ciderpress.models import Slice, estimate_transcription_time
from ciderpress.util import find_tool

needs_ffmpeg = pytest.mark.skipif(
    find_tool("ffmpeg") is None or find_tool("ffprobe") is None,
    reason="ffmpeg and ffprobe are required",
)


class FakeEngine:
    """Yields fixed segments and records every path it was asked to transcribe."""

    def __init__(self, segments=("Hello", "world"), fail_names=(), fail_times: int = 0):
        self.segments = list(segments)
        self.fail_names = set(fail_names)
        self.fail_times = fail_times
        self.calls: List[Path] = []

    def transcribe(self, path, model):
        path = Path(path)
        self.calls.append(path)
        if path.name in self.fail_names:
            raise EngineError(f"engine choked on {path.name}")
        if self.fail_times > 0:
            self.fail_times -= 1
            raise EngineError("transient failure")
        for text in self.segments:
            yield Segment(text)


class RecordingObserver:
    def __init__(self):
        self.lines = []

    def __call__(self, level, message):
        self.lines.append((level, message))

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [m for lvl, m in self.lines if level is None or lvl == level]


def write_wav(path: Path, seconds: float, rate: int = 44100, channels: int = 2,
              freq: float = 440.0) -> Path:
    """Write a sine tone as 16-bit PCM using only the standard library."""
    frames = int(seconds * rate)
    data = bytearray()
    for i in range(frames):
        sample = int(12000 * math.sin(2 * math.pi * freq * i / rate))
        data += struct.pack("<h", sample) * channels
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(channels)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(bytes(data))
    return path


def write_recording_index(path: Path, rows) -> Path:
    """Minimal CloudRecordings.db with (Z_PK, ZPATH, ZDATE, ZDURATION) rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute(
        "CREATE TABLE IF NOT EXISTS ZCLOUDRECORDING "
        "(Z_PK INTEGER PRIMARY KEY, ZPATH TEXT, ZDATE REAL, ZDURATION REAL)"
    )
    conn.executemany("INSERT INTO ZCLOUDRECORDING VALUES (?, ?, ?, ?)", rows)
    conn.commit()
    conn.close()
    return path


@pytest.fixture(name="config")
def fixture_config(tmp_path: Path) -> Config:
    source = tmp_path / "source"
    source.mkdir()
    config = Config(source_root=source, home=tmp_path / "home", retry_delay=0)
    config.ensure_home()
    return config


@pytest.fixture(name="catalog")
def fixture_catalog(config: Config):
    with Catalog(config.db_path) as catalog:
        catalog.init_schema()
        yield catalog


@pytest.fixture(name="observer")
def fixture_observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture(name="events")
def fixture_events(config: Config, observer: RecordingObserver) -> EventLog:
    return EventLog(config.jsonl_path, observer)


@pytest.fixture(name="make_slice")
def fixture_make_slice(config: Config, catalog: Catalog):
    """Create an audio file in managed storage and a matching catalog row."""

    def make(filename: str = "memo.m4a", content: bytes = b"\x00" * 4096,
             write_file: bool = True, **fields) -> Slice:
        if write_file:
            (config.audio_dir / filename).write_bytes(content)
        duration = fields.pop("audio_time_length_seconds", None)
        fields.setdefault("audio_file_type", Path(filename).suffix.lstrip("."))
        s = Slice(
            original_audio_file_name=filename,
            audio_file_size=len(content),
            estimated_time_to_transcribe=estimate_transcription_time(len(content), duration),
            audio_time_length_seconds=duration,
            **fields,
        )
        catalog.insert(s)
        return s

    return make


FAKE_FFMPEG = """#!/bin/sh
for last in "$@"; do :; done
printf 'RIFFfake' > "$last"
"""


@pytest.fixture(name="fake_ffmpeg")
def fixture_fake_ffmpeg(tmp_path: Path, monkeypatch) -> Path:
    """An ffmpeg stand-in first on PATH that writes a stub file to its output argument."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "ffmpeg"
    script.write_text(FAKE_FFMPEG)
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    return script
