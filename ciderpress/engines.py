"""Speech-to-text engines.

Every engine exposes transcribe(path, model) as a generator of Segment and
DownloadEvent objects. Failures are raised as EngineError from inside the
generator, so callers see them while iterating.
"""
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .config import Config
from .errors import ConfigurationError, EngineError, EngineTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class Segment:
    text: str
    start: Optional[float] = None
    end: Optional[float] = None


@dataclass
class DownloadEvent:
    model: str
    status: str  # started | progress | completed | failed
    percentage: Optional[float] = None
    error: Optional[str] = None


EngineEvent = Union[Segment, DownloadEvent]


class MlxWhisperEngine:
    """mlx-whisper on Apple Silicon. Weights come from the Hugging Face hub."""

    name = "mlx"

    def __init__(self, language: Optional[str] = None):
        self.language = language

    def _ensure_model(self, model: str) -> Iterator[DownloadEvent]:
        if Path(model).expanduser().exists():
            return
        from huggingface_hub import snapshot_download
        from huggingface_hub.errors import LocalEntryNotFoundError

        try:
            snapshot_download(model, local_files_only=True)
            return
        except LocalEntryNotFoundError:
            pass

        yield DownloadEvent(model, "started", 0.0)
        try:
            snapshot_download(model)
        except Exception as e:
            yield DownloadEvent(model, "failed", error=str(e))
            raise EngineError(f"Could not download model {model}: {e}") from e
        yield DownloadEvent(model, "completed", 100.0)

    def transcribe(self, path: Path, model: str) -> Iterator[EngineEvent]:
        try:
            import mlx_whisper
        except ImportError as e:
            raise EngineError("mlx-whisper is not installed (Apple Silicon only)") from e

        yield from self._ensure_model(model)

        try:
            result = mlx_whisper.transcribe(
                str(path),
                path_or_hf_repo=model,
                language=self.language,
            )
        except Exception as e:
            raise EngineError(f"mlx-whisper failed on {Path(path).name}: {e}") from e

        segments = result.get("segments") or []
        if not segments and result.get("text"):
            yield Segment(result["text"].strip())
            return
        for seg in segments:
            text = (seg.get("text") or "").strip()
            if text:
                yield Segment(text, seg.get("start"), seg.get("end"))


class WhisperCliEngine:
    """The openai-whisper command line tool, run as a child process."""

    name = "cli"

    def __init__(self, binary: Optional[Path] = None, timeout: float = 30,
                 language: Optional[str] = None):
        self.binary = str(binary) if binary else "whisper"
        self.timeout = timeout
        self.language = language

    def transcribe(self, path: Path, model: str) -> Iterator[EngineEvent]:
        with tempfile.TemporaryDirectory(prefix="ciderpress_whisper_") as out_dir:
            cmd = [
                self.binary, str(path),
                "--model", model,
                "--output_format", "txt",
                "--output_dir", out_dir,
                "--verbose", "False",
            ]
            if self.language:
                cmd += ["--language", self.language]

            logger.debug("Running %s", " ".join(cmd))
            try:
                proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise EngineTimeoutError(self.timeout) from e
            except FileNotFoundError as e:
                raise EngineError(f"Whisper binary not found: {self.binary}") from e

            if proc.returncode != 0:
                tail = (proc.stderr or "").strip().splitlines()[-3:]
                raise EngineError(f"whisper exited with {proc.returncode}: {' '.join(tail)}")

            txt_path = Path(out_dir) / f"{Path(path).stem}.txt"
            if not txt_path.exists():
                raise EngineError(f"whisper produced no transcript for {path}")
            lines = txt_path.read_text(encoding="utf-8").splitlines()

        for line in lines:
            line = line.strip()
            if line:
                yield Segment(line)


def get_engine(config: Config):
    if config.engine == "mlx":
        return MlxWhisperEngine(language=config.whisper_language)
    if config.engine == "cli":
        return WhisperCliEngine(
            binary=config.whisper_bin,
            timeout=config.engine_timeout,
            language=config.whisper_language,
        )
    raise ConfigurationError(f"Unknown engine: {config.engine!r} (expected 'mlx' or 'cli')")
