"""Exception hierarchy.

Configuration and integrity errors abort a batch. Item errors are caught
inside the batch loop, counted, and the batch moves on.
"""


class CiderPressError(Exception):
    """Base class for every error raised by CiderPress."""


class ConfigurationError(CiderPressError):
    pass


class SourceNotFoundError(ConfigurationError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Source directory not found: {path}")


class SourcePermissionError(ConfigurationError):
    def __init__(self, path):
        self.path = path
        super().__init__(
            f"Permission denied reading {path}. "
            "Grant Full Disk Access to your terminal and try again."
        )


class RecordingIndexError(ConfigurationError):
    """The recording index exists but could not be read."""


class IntegrityError(CiderPressError):
    pass


class CopyVerificationError(IntegrityError):
    def __init__(self, path, expected: int, actual):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Copy verification failed for {path}: expected {expected} bytes, got {actual}"
        )


class ConflictError(IntegrityError):
    def __init__(self, filename: str):
        self.filename = filename
        super().__init__(f"Filename already in use: {filename}")


class SliceNotFoundError(IntegrityError):
    def __init__(self, slice_id):
        self.slice_id = slice_id
        super().__init__(f"Slice not found: {slice_id}")


class ItemError(CiderPressError):
    pass


class AudioFileMissingError(ItemError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Audio file not found: {path}")


class TranscodeError(ItemError):
    pass


class EngineError(CiderPressError):
    """The speech engine failed to produce a transcript."""


class EngineTimeoutError(EngineError):
    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Speech engine timed out after {timeout}s")
