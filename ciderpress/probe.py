"""Read audio duration from container metadata via ffprobe."""
import json
import logging
import subprocess
from pathlib import Path
from typing import Optional

from .constants import FFPROBE_TIMEOUT
from .util import find_tool

logger = logging.getLogger(__name__)


def ffprobe_json(path: Path, ffprobe: Optional[str] = None) -> dict:
    """Run ffprobe on path and return its format and stream info.

    Raises subprocess.CalledProcessError when ffprobe rejects the file and
    OSError when the binary cannot be run.
    """
    cmd = [
        ffprobe or find_tool("ffprobe") or "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format", "-show_streams",
        str(path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True,
                            timeout=FFPROBE_TIMEOUT, check=True)
    return json.loads(result.stdout)


def audio_stream(info: dict) -> dict:
    return next(
        (s for s in info.get("streams", []) if s.get("codec_type") == "audio"),
        {},
    )


def _positive(value) -> Optional[float]:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


def probe_duration(path: Path, ffprobe: Optional[str] = None) -> Optional[float]:
    """Duration in seconds, or None when the file has none to report.

    Prefers the container duration, then the audio stream's own duration.
    Never guesses from file size.
    """
    try:
        info = ffprobe_json(path, ffprobe)
    except (subprocess.SubprocessError, OSError, ValueError) as e:
        logger.warning("Could not probe %s: %s", path, e)
        return None

    seconds = _positive(info.get("format", {}).get("duration"))
    if seconds is None:
        seconds = _positive(audio_stream(info).get("duration"))
    if seconds is None:
        logger.debug("No duration metadata in %s", path)
    return seconds
