"""Configuration management."""
import enum
import os
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .constants import (
    APPLE_VOICEMEMOS_DIR, DB_FILENAME, DEFAULT_AUDIO_EXTENSIONS,
    DEFAULT_CONFIG_PATH, DEFAULT_ENGINE_TIMEOUT, DEFAULT_HOME,
    DEFAULT_WHISPER_MODEL, AUTONAME_SECONDS, RECORDING_INDEX_NAME,
)

PATH_KEYS = ("source_root", "home", "whisper_bin")


class SourceRootStatus(enum.Enum):
    VALID = "valid"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    NO_INDEX = "no_index"
    NO_RECORDINGS = "no_recordings"


@dataclass
class Config:
    source_root: Path = APPLE_VOICEMEMOS_DIR
    home: Path = DEFAULT_HOME
    whisper_model: str = DEFAULT_WHISPER_MODEL
    whisper_language: Optional[str] = None
    engine: str = "mlx"  # mlx | cli
    whisper_bin: Optional[Path] = None
    engine_timeout: float = DEFAULT_ENGINE_TIMEOUT
    audio_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_AUDIO_EXTENSIONS))
    skip_already_transcribed: bool = True
    autoname_seconds: int = AUTONAME_SECONDS
    transcription_retries: int = 0
    retry_delay: float = 2.0
    keep_intermediate_audio: bool = False

    @property
    def db_path(self) -> Path:
        return self.home / DB_FILENAME

    @property
    def audio_dir(self) -> Path:
        return self.home / "audio"

    @property
    def transcript_dir(self) -> Path:
        return self.home / "transcripts"

    @property
    def work_dir(self) -> Path:
        return self.home / "work"

    @property
    def exports_dir(self) -> Path:
        return self.home / "exports"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def jsonl_path(self) -> Path:
        return self.logs_dir / f"ciderpress_{datetime.now().strftime('%Y-%m-%d')}.jsonl"

    @property
    def recording_index_path(self) -> Path:
        return self.source_root / RECORDING_INDEX_NAME

    def ensure_home(self):
        for d in (self.home, self.audio_dir, self.transcript_dir,
                  self.exports_dir, self.logs_dir, self.work_dir):
            d.mkdir(parents=True, exist_ok=True)

    def validate_source_root(self) -> SourceRootStatus:
        """Classify the source root without raising.

        A missing directory whose parent cannot be listed is reported as a
        permission problem, since the sandbox hides its contents.
        """
        root = self.source_root
        try:
            entries = os.listdir(root)
        except PermissionError:
            return SourceRootStatus.PERMISSION_DENIED
        except (FileNotFoundError, NotADirectoryError):
            try:
                os.listdir(root.parent)
            except PermissionError:
                return SourceRootStatus.PERMISSION_DENIED
            except OSError:
                pass
            return SourceRootStatus.NOT_FOUND

        if RECORDING_INDEX_NAME not in entries:
            return SourceRootStatus.NO_INDEX
        exts = {e.lower() for e in self.audio_extensions}
        for _, _, files in os.walk(root):
            if any(Path(f).suffix.lower() in exts for f in files):
                return SourceRootStatus.VALID
        return SourceRootStatus.NO_RECORDINGS

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        config_path = path or DEFAULT_CONFIG_PATH
        if config_path.exists():
            import yaml
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
            for key in PATH_KEYS:
                if raw.get(key):
                    raw[key] = Path(raw[key]).expanduser()
            known = {f.name for f in fields(cls)}
            return cls(**{k: v for k, v in raw.items() if k in known})
        return cls()

    def save(self, path: Optional[Path] = None):
        import yaml
        config_path = path or DEFAULT_CONFIG_PATH
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = str(value) if isinstance(value, Path) else value
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as fh:
            yaml.safe_dump(data, fh, sort_keys=False)
