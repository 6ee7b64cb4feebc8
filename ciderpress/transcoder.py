"""Audio conversion with ffmpeg.

Speech engines want 16 kHz mono signed 16-bit PCM. convert_to_canonical
decodes, resamples and re-encodes into a uniquely named temporary WAV.
extract_prefix copies the first N seconds of the audio stream without
re-encoding, which is what auto-naming feeds the engine.
"""
import logging
import os
import subprocess
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from .constants import (
    CANONICAL_CHANNELS, CANONICAL_CODEC, CANONICAL_SAMPLE_RATE, FFMPEG_TIMEOUT,
)
from .errors import TranscodeError
from .probe import audio_stream, ffprobe_json
from .util import find_tool

logger = logging.getLogger(__name__)


def is_canonical(path: Path, ffprobe: Optional[str] = None) -> bool:
    """True if path is already a 16 kHz mono pcm_s16le WAV."""
    try:
        info = ffprobe_json(path, ffprobe)
    except (subprocess.SubprocessError, OSError, ValueError):
        return False

    if "wav" not in info.get("format", {}).get("format_name", "").split(","):
        return False
    stream = audio_stream(info)
    try:
        return (
            stream.get("codec_name") == CANONICAL_CODEC
            and int(stream.get("sample_rate", 0)) == CANONICAL_SAMPLE_RATE
            and int(stream.get("channels", 0)) == CANONICAL_CHANNELS
        )
    except (TypeError, ValueError):
        return False


def _run_ffmpeg(cmd: List[str], input_path: Path, output_path: Path, what: str):
    try:
        subprocess.run(cmd, check=True, stdout=subprocess.DEVNULL,
                       stderr=subprocess.PIPE, timeout=FFMPEG_TIMEOUT)
    except subprocess.CalledProcessError as e:
        output_path.unlink(missing_ok=True)
        stderr = e.stderr.decode(errors="replace").strip()[-2000:]
        raise TranscodeError(f"{what} of {input_path} failed: {stderr}") from e
    except subprocess.TimeoutExpired as e:
        output_path.unlink(missing_ok=True)
        raise TranscodeError(f"{what} of {input_path} timed out after {FFMPEG_TIMEOUT}s") from e
    except OSError as e:
        output_path.unlink(missing_ok=True)
        raise TranscodeError(f"Cannot run ffmpeg ({cmd[0]}): {e}") from e


def _check_output(output_path: Path, what: str):
    try:
        empty = output_path.stat().st_size == 0
    except FileNotFoundError:
        empty = True
    if empty:
        output_path.unlink(missing_ok=True)
        raise TranscodeError(f"{what} produced no output: {output_path}")


def _temp_output(input_path: Path, suffix: str, output_dir: Optional[Path]) -> Path:
    """A fresh, empty file that no other slice can own."""
    directory = Path(output_dir) if output_dir else Path(tempfile.gettempdir())
    directory.mkdir(parents=True, exist_ok=True)
    millis = int(time.time() * 1000)
    fd, name = tempfile.mkstemp(prefix=f"temp_{input_path.stem}_{millis}_",
                                suffix=suffix, dir=str(directory))
    os.close(fd)
    return Path(name)


def convert_to_canonical(input_path: Path, output_dir: Optional[Path] = None,
                         ffmpeg: Optional[str] = None) -> Path:
    """Write a canonical WAV copy of input_path and return its path.

    The copy gets a unique name in output_dir (default: the system temp
    directory), so it never lands on the input or on a sibling file.
    """
    input_path = Path(input_path)
    output_path = _temp_output(input_path, ".wav", output_dir)

    cmd = [
        ffmpeg or find_tool("ffmpeg") or "ffmpeg",
        "-y", "-nostdin", "-v", "error",
        "-i", str(input_path),
        "-vn", "-sn", "-dn",
        "-ac", str(CANONICAL_CHANNELS),
        "-ar", str(CANONICAL_SAMPLE_RATE),
        "-acodec", CANONICAL_CODEC,
        "-f", "wav",
        str(output_path),
    ]
    _run_ffmpeg(cmd, input_path, output_path, "Conversion")
    _check_output(output_path, "Conversion")
    logger.debug("Converted %s -> %s", input_path, output_path)
    return output_path


def extract_prefix(input_path: Path, duration_seconds: float,
                   output_dir: Optional[Path] = None, ffmpeg: Optional[str] = None) -> Path:
    """Copy the first duration_seconds of audio into a temp file.

    No re-encoding happens, so the cut lands on a packet boundary and the
    output keeps the input's container type. ffmpeg picks the best audio
    stream itself once video, subtitles and data are excluded.
    """
    input_path = Path(input_path)
    output_path = _temp_output(input_path, input_path.suffix, output_dir)

    cmd = [
        ffmpeg or find_tool("ffmpeg") or "ffmpeg",
        "-y", "-nostdin", "-v", "error",
        "-i", str(input_path),
        "-t", str(duration_seconds),
        "-vn", "-sn", "-dn",
        "-c", "copy",
        str(output_path),
    ]
    _run_ffmpeg(cmd, input_path, output_path, "Prefix extraction")
    _check_output(output_path, "Prefix extraction")
    return output_path
