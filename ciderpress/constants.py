"""Immutable constants for CiderPress."""
from pathlib import Path

VERSION = "0.1.0"

# Apple epoch: 2001-01-01T00:00:00Z in Unix time
APPLE_EPOCH_OFFSET = 978307200

# Default paths
DEFAULT_HOME = Path.home() / ".ciderpress"
DEFAULT_CONFIG_PATH = DEFAULT_HOME / "config.yaml"
DB_FILENAME = "CiderPress-db.sqlite"

APPLE_VOICEMEMOS_DIR = (
    Path.home()
    / "Library"
    / "Group Containers"
    / "group.com.apple.VoiceMemos.shared"
    / "Recordings"
)

RECORDING_INDEX_NAME = "CloudRecordings.db"

# File extensions
DEFAULT_AUDIO_EXTENSIONS = [".m4a"]
TITLE_STRIP_EXTENSIONS = (".m4a", ".wav", ".mp3")
TEXT_SLICE_TYPE = "text"

# Canonical transcription format: 16 kHz mono signed 16-bit PCM in WAV
CANONICAL_SAMPLE_RATE = 16000
CANONICAL_CHANNELS = 1
CANONICAL_CODEC = "pcm_s16le"

# ffmpeg tools, looked up on PATH first
FFMPEG_SEARCH_DIRS = ["/usr/local/bin", "/opt/homebrew/bin"]
FFMPEG_TIMEOUT = 3600
FFPROBE_TIMEOUT = 30

# Estimates: 35 s of processing per 600 s (10 min) of audio, ~1 MiB per audio minute
PROCESSING_SECONDS_PER_TEN_MINUTES = 35
TEN_MINUTES = 600
BYTES_PER_AUDIO_MINUTE = 1_048_576
DEFAULT_BYTES_PER_SECOND = 34000.0

# Anything longer than a day is a corrupt probe result
MAX_PLAUSIBLE_DURATION = 86400

# Transcription
DEFAULT_WHISPER_MODEL = "mlx-community/whisper-turbo"
DEFAULT_ENGINE_TIMEOUT = 30
AUTONAME_SECONDS = 15
AUTONAME_MAX_CHARS = 50
INVALID_NAME_CHARS = '/\\:*?"<>|'
