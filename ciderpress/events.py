"""Batch event fan-out: Python logging, the JSONL journal, and an observer."""
import logging
from pathlib import Path
from typing import Callable, Optional

from .util import write_jsonl

logger = logging.getLogger(__name__)

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

Observer = Callable[[str, str], None]


class EventLog:
    def __init__(self, jsonl_path: Optional[Path] = None,
                 observer: Optional[Observer] = None):
        self.jsonl_path = jsonl_path
        self.observer = observer

    def emit(self, category: str, action: str, message: str, level: str = "info",
             slice_id: Optional[int] = None, detail: Optional[dict] = None):
        logging.getLogger(f"ciderpress.{category}").log(LEVELS.get(level, logging.INFO), message)
        if self.jsonl_path is not None:
            payload = dict(detail or {})
            payload.setdefault("msg", message)
            try:
                write_jsonl(self.jsonl_path, category, action, slice_id, payload, level=level)
            except OSError as e:
                logger.warning("Could not write journal %s: %s", self.jsonl_path, e)
        if self.observer is not None:
            self.observer(level, message)

    def info(self, category: str, action: str, message: str, **kwargs):
        self.emit(category, action, message, level="info", **kwargs)

    def warning(self, category: str, action: str, message: str, **kwargs):
        self.emit(category, action, message, level="warning", **kwargs)

    def error(self, category: str, action: str, message: str, **kwargs):
        self.emit(category, action, message, level="error", **kwargs)
