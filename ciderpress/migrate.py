"""Copy voice memos from the source tree into managed storage and catalog them."""
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from .apple import check_recording_index
from .config import Config
from .db import Catalog
from .errors import CopyVerificationError, SourceNotFoundError, SourcePermissionError
from .events import EventLog
from .models import MigrationSummary, Slice, estimate_transcription_time
from .probe import probe_duration
from .progress import MigrationProgressCell
from .util import format_count_line, format_file_size

logger = logging.getLogger(__name__)

Prober = Callable[[Path], Optional[float]]


class MigrationEngine:
    """
    One-shot migration of the source tree into the catalog.

    Steps: copy the recording index, scan the source, copy and catalog each
    new file, summarize. Deduplication is by bare filename, so rerunning a
    migration copies nothing that is already cataloged. A failure on one
    file is counted and the run moves on; a bad source root or an
    unreadable recording index stops the run before anything is copied.
    """

    def __init__(self, config: Config, catalog: Catalog,
                 progress: Optional[MigrationProgressCell] = None,
                 events: Optional[EventLog] = None,
                 probe: Prober = probe_duration):
        self.config = config
        self.catalog = catalog
        self.progress = progress or MigrationProgressCell()
        self.events = events or EventLog()
        self.probe = probe
        self.scan_errors = 0

    def run(self) -> MigrationSummary:
        summary = MigrationSummary()
        self.progress.begin()
        self.catalog.log_action("migrate", "start", detail={"source": str(self.config.source_root)})
        try:
            self.check_source_root()
            self._copy_index()

            self.progress.update(current_step="Scanning source")
            files = self.scan()
            total_bytes = sum(self._size(p) for p in files)
            self.progress.update(
                total_recordings=len(files),
                total_size_bytes=total_bytes,
                current_step="Copying files",
            )
            self.events.info("migrate", "scan",
                             f"Found {len(files)} recordings ({format_file_size(total_bytes)})")

            self.config.audio_dir.mkdir(parents=True, exist_ok=True)
            for path in files:
                self._migrate_one(path, summary)

            self.progress.update(current_step="Finalizing", current_recording=None)
            counts = {"copied": summary.copied, "skipped": summary.skipped, "errors": summary.errors}
            self.events.info("migrate", "complete",
                             f"Migration complete: {format_count_line(counts)}",
                             detail={"total_size_bytes": summary.total_size_bytes})
            self.catalog.log_action("migrate", "complete", detail=counts)
            return summary
        finally:
            self.progress.clear()

    def _copy_index(self):
        self.progress.update(current_step="Copying recording index")
        index_path = self.config.recording_index_path
        if not check_recording_index(index_path):
            self.events.warning("migrate", "index_missing",
                                f"No recording index at {index_path}; recording dates unavailable")
            return
        added = self.catalog.copy_recording_index(index_path)
        self.events.info("migrate", "index", f"Copied {added} recording index rows")

    def check_source_root(self):
        """Raise unless the source root can be listed."""
        root = self.config.source_root
        try:
            with os.scandir(root):
                pass
        except PermissionError:
            raise SourcePermissionError(root) from None
        except (FileNotFoundError, NotADirectoryError):
            raise SourceNotFoundError(root) from None

    def scan(self) -> List[Path]:
        """All audio files under the source root, in sorted walk order."""
        root = self.config.source_root
        self.check_source_root()

        exts = {e.lower() for e in self.config.audio_extensions}
        found = []
        self.scan_errors = 0

        def on_error(err: OSError):
            self.scan_errors += 1
            self.events.warning("migrate", "scan_error", f"Cannot read {err.filename}: {err}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            for name in sorted(filenames):
                if Path(name).suffix.lower() in exts:
                    found.append(Path(dirpath) / name)
        return found

    @staticmethod
    def _size(path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError:
            return 0

    def _migrate_one(self, source: Path, summary: MigrationSummary):
        filename = source.name
        dest = self.config.audio_dir / filename
        unclaimed = None
        self.progress.update(current_recording=filename)
        try:
            if self.catalog.exists(filename):
                summary.skipped += 1
                self.events.info("migrate", "skip", f"Skipped (already cataloged): {filename}")
                self.progress.increment(processed_recordings=1,
                                        processed_size_bytes=self._size(source))
                return

            shutil.copy2(source, dest)
            unclaimed = dest
            expected = source.stat().st_size
            actual = dest.stat().st_size if dest.exists() else None
            if actual != expected:
                raise CopyVerificationError(dest, expected, actual)

            duration = self.probe(dest)
            s = Slice(
                original_audio_file_name=filename,
                audio_file_size=actual,
                audio_file_type=source.suffix.lower().lstrip("."),
                estimated_time_to_transcribe=estimate_transcription_time(actual, duration),
                audio_time_length_seconds=duration,
                recording_date=self.catalog.lookup_recording_date(filename),
            )
            self.catalog.insert(s)
            unclaimed = None

            summary.copied += 1
            summary.total_size_bytes += actual
            self.progress.increment(processed_recordings=1, processed_size_bytes=actual)
            self.events.info("migrate", "copy",
                             f"Copied {filename} ({format_file_size(actual)})",
                             slice_id=s.id, detail={"size": actual})
        except Exception as e:
            summary.errors += 1
            if unclaimed is not None:
                unclaimed.unlink(missing_ok=True)
            self.progress.increment(processed_recordings=1, failed_recordings=1)
            self.events.error("migrate", "error", f"Failed to migrate {filename}: {e}",
                              detail={"file": str(source), "error": str(e)})
