"""Run a batch on a worker thread while the caller watches its progress."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional

from .config import Config
from .db import Catalog
from .engines import get_engine
from .events import EventLog
from .migrate import MigrationEngine
from .models import MigrationSummary, SliceOutcome
from .progress import MigrationProgressCell, ProgressCell, TranscriptionProgressCell
from .transcriber import TranscriptionOrchestrator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[object], None]


class BatchRunner:
    """
    Owns the progress cells and runs one batch at a time.

    Each batch gets a single-worker pool and its own catalog connection,
    opened and closed on the worker thread. The calling thread polls the
    progress cell every poll_interval seconds and passes each snapshot
    (None once the batch has cleared it) to on_progress.
    """

    def __init__(self, config: Config, events: Optional[EventLog] = None,
                 engine=None, poll_interval: float = 0.5):
        self.config = config
        self.events = events or EventLog(config.jsonl_path)
        self.engine = engine
        self.poll_interval = poll_interval
        self.migration_progress = MigrationProgressCell()
        self.transcription_progress = TranscriptionProgressCell()

    def _run(self, work: Callable, cell: ProgressCell,
             on_progress: Optional[ProgressCallback]):
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="ciderpress-batch") as pool:
            future = pool.submit(work)
            while True:
                done, _ = wait([future], timeout=self.poll_interval)
                if on_progress is not None:
                    on_progress(cell.snapshot())
                if done:
                    return future.result()

    def run_migration(self, on_progress: Optional[ProgressCallback] = None) -> MigrationSummary:
        def work():
            with Catalog(self.config.db_path) as catalog:
                catalog.init_schema()
                engine = MigrationEngine(self.config, catalog, self.migration_progress, self.events)
                return engine.run()

        return self._run(work, self.migration_progress, on_progress)

    def _orchestrator(self, catalog: Catalog) -> TranscriptionOrchestrator:
        engine = self.engine or get_engine(self.config)
        return TranscriptionOrchestrator(
            self.config, catalog, engine, self.transcription_progress, self.events,
        )

    def run_transcription(self, slice_ids: Iterable[int], model: Optional[str] = None,
                          on_progress: Optional[ProgressCallback] = None,
                          cancel: Optional[threading.Event] = None) -> List[SliceOutcome]:
        ids = list(slice_ids)

        def work():
            with Catalog(self.config.db_path) as catalog:
                catalog.init_schema()
                return self._orchestrator(catalog).run(ids, model=model, cancel=cancel)

        return self._run(work, self.transcription_progress, on_progress)

    def run_rename(self, slice_ids: Iterable[int], seconds: Optional[int] = None,
                   model: Optional[str] = None,
                   on_progress: Optional[ProgressCallback] = None) -> Dict[str, int]:
        ids = list(slice_ids)

        def work():
            with Catalog(self.config.db_path) as catalog:
                catalog.init_schema()
                return self._orchestrator(catalog).rename_from_audio(ids, seconds, model)

        return self._run(work, self.transcription_progress, on_progress)
