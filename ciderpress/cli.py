"""CLI interface using Typer."""
import logging
import shutil
from pathlib import Path
from typing import List, Optional

import typer

from .apple import count_recordings
from .config import Config, SourceRootStatus
from .constants import VERSION
from .db import Catalog
from .errors import CiderPressError, RecordingIndexError
from .events import EventLog
from .exporter import export_audio, export_transcripts
from .importer import create_text_slice, import_audio_file, import_text_file
from .maintenance import (
    auto_populate_titles, backfill_recording_dates, populate_audio_durations, rename_slice,
)
from .runner import BatchRunner
from .util import find_tool, format_count_line, format_file_size, format_seconds

app = typer.Typer(
    name="ciderpress",
    help=f"CiderPress v{VERSION}: voice memos to searchable transcripts.",
    no_args_is_help=True,
)


def _load(config_path: Optional[Path] = None, verbose: bool = False) -> tuple:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = Config.load(config_path)
    catalog = Catalog(config.db_path)
    return config, catalog


def _echo_event(level: str, message: str):
    if level in ("warning", "error"):
        print(f"  {level.upper()}: {message}")


def _fail(e: Exception):
    print(f"Error: {e}")
    raise typer.Exit(1)


def _migration_line(p) -> str:
    if p is None:
        return ""
    return (f"[{p.processed_recordings}/{p.total_recordings}] {p.current_step}"
            f" {p.current_recording or ''}")


def _transcription_line(p) -> str:
    if p is None:
        return ""
    remaining = max(0, p.estimated_total_seconds - p.elapsed_seconds)
    return (f"[{p.finished_slices}/{p.total_slices}] {p.current_step}"
            f" {p.current_slice_name or ''} (elapsed {format_seconds(p.elapsed_seconds)},"
            f" ~{format_seconds(remaining)} left)")


def _live(render):
    last = {"line": ""}

    def on_progress(snapshot):
        line = render(snapshot)
        if line and line != last["line"]:
            print(f"  {line}")
            last["line"] = line

    return on_progress


@app.command()
def init(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Initialize the CiderPress home folder and catalog."""
    config, catalog = _load(config_path)
    config.ensure_home()

    with catalog:
        catalog.init_schema()
        print(f"  Catalog:  {config.db_path}")
    print(f"  Audio:    {config.audio_dir}")
    print(f"  Logs:     {config.logs_dir}")

    print("\nInitialized. Run 'ciderpress migrate' to import voice memos.")


@app.command()
def doctor(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Check system health."""
    config, _ = _load(config_path)
    issues = []
    ok = []

    status = config.validate_source_root()
    messages = {
        SourceRootStatus.VALID: None,
        SourceRootStatus.PERMISSION_DENIED: "Permission denied (grant Full Disk Access)",
        SourceRootStatus.NOT_FOUND: "not found",
        SourceRootStatus.NO_INDEX: "no CloudRecordings.db (recording dates unavailable)",
        SourceRootStatus.NO_RECORDINGS: "no recordings found",
    }
    if status is SourceRootStatus.VALID:
        ok.append(f"Voice memos: {config.source_root}")
    else:
        issues.append(f"Voice memos {messages[status]}: {config.source_root}")

    if status in (SourceRootStatus.VALID, SourceRootStatus.NO_RECORDINGS):
        try:
            n = count_recordings(config.recording_index_path)
            ok.append(f"Recording index: {n} recordings")
        except RecordingIndexError as e:
            issues.append(str(e))

    if config.db_path.exists():
        ok.append(f"Catalog: {config.db_path}")
    else:
        issues.append(f"Catalog not found (run 'ciderpress init'): {config.db_path}")

    for tool in ("ffmpeg", "ffprobe"):
        found = find_tool(tool)
        if found:
            ok.append(f"{tool}: {found}")
        else:
            issues.append(f"{tool} not found")

    if config.engine == "cli":
        whisper_bin = str(config.whisper_bin) if config.whisper_bin else shutil.which("whisper")
        if whisper_bin and Path(whisper_bin).exists():
            ok.append(f"Whisper: {whisper_bin}")
        else:
            issues.append("Whisper CLI not found")
    else:
        try:
            import mlx_whisper  # noqa: F401
            ok.append(f"mlx-whisper ({config.whisper_model})")
        except ImportError:
            issues.append("mlx-whisper not installed (set engine: cli to use the whisper binary)")

    for item in ok:
        print(f"  OK  {item}")
    for item in issues:
        print(f"  !!  {item}")

    if not issues:
        print(f"\nAll {len(ok)} checks passed.")
    else:
        print(f"\n{len(issues)} issue(s) found.")
        raise typer.Exit(1)


@app.command("migrate")
def migrate_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Copy new voice memos into CiderPress and catalog them."""
    config, _ = _load(config_path, verbose)
    config.ensure_home()
    runner = BatchRunner(config, EventLog(config.jsonl_path, _echo_event))

    print(f"Migrating from {config.source_root}...")
    try:
        summary = runner.run_migration(on_progress=_live(_migration_line))
    except CiderPressError as e:
        _fail(e)

    counts = {"copied": summary.copied, "skipped": summary.skipped, "errors": summary.errors}
    print(f"Done: {format_count_line(counts)} ({format_file_size(summary.total_size_bytes)} copied)")


@app.command("transcribe")
def transcribe_cmd(
    slice_ids: Optional[List[int]] = typer.Argument(None, help="Slice ids (default: all pending)"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Max slices to transcribe"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Override whisper_model"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Transcribe slices with the configured speech engine."""
    config, catalog = _load(config_path, verbose)
    config.ensure_home()

    if not slice_ids:
        with catalog:
            catalog.init_schema()
            slice_ids = catalog.list_pending_ids()
    if limit:
        slice_ids = slice_ids[:limit]
    if not slice_ids:
        print("No pending transcriptions.")
        return

    runner = BatchRunner(config, EventLog(config.jsonl_path, _echo_event))
    print(f"Transcription batch: {len(slice_ids)} slices")
    try:
        outcomes = runner.run_transcription(slice_ids, model=model,
                                            on_progress=_live(_transcription_line))
    except CiderPressError as e:
        _fail(e)

    counts = {}
    for o in outcomes:
        counts[o.status] = counts.get(o.status, 0) + 1
    print(f"Batch complete: {format_count_line(counts)}")
    if counts.get("failed"):
        raise typer.Exit(1)


@app.command()
def autoname(
    slice_ids: List[int] = typer.Argument(..., help="Slice ids to rename"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    seconds: Optional[int] = typer.Option(None, "--seconds", "-s", help="Audio prefix length"),
):
    """Rename slices from the first few seconds of their audio."""
    config, _ = _load(config_path)
    runner = BatchRunner(config, EventLog(config.jsonl_path, _echo_event))
    try:
        counts = runner.run_rename(slice_ids, seconds=seconds)
    except CiderPressError as e:
        _fail(e)
    print(f"Done: {format_count_line(counts)}")


@app.command()
def rename(
    slice_id: int = typer.Argument(...),
    new_name: str = typer.Argument(..., help="New filename, extension included"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Rename one slice and its audio file."""
    config, catalog = _load(config_path)
    with catalog:
        try:
            rename_slice(config, catalog, slice_id, new_name)
        except CiderPressError as e:
            _fail(e)
    print(f"Renamed slice {slice_id} to {new_name}")


@app.command()
def durations(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Repair corrupt durations and probe any that are missing."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        counts = populate_audio_durations(config, catalog)
    print(f"Done: {format_count_line(counts)}")


@app.command("backfill-dates")
def backfill_dates_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Fill missing recording dates from the recording index."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        updated = backfill_recording_dates(catalog)
    print(f"Recording dates filled: {updated}")


@app.command()
def titles(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Give untitled slices a title from their filename."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        updated = auto_populate_titles(catalog)
    print(f"Titles set: {updated}")


@app.command("import-audio")
def import_audio_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Import a single audio file."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        try:
            slice_id = import_audio_file(config, catalog, path, title=title)
        except CiderPressError as e:
            _fail(e)
    print(f"Imported {path.name} as slice {slice_id}")


@app.command("import-text")
def import_text_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    title: Optional[str] = typer.Option(None, "--title", "-t"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Import a text file as an already-transcribed slice."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        try:
            slice_id = import_text_file(catalog, path, title=title)
        except CiderPressError as e:
            _fail(e)
    print(f"Imported {path.name} as slice {slice_id}")


@app.command()
def note(
    title: str = typer.Argument(...),
    text: str = typer.Argument(...),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Create a text slice from the command line."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        slice_id = create_text_slice(catalog, title, text)
    print(f"Created slice {slice_id}")


@app.command()
def export(
    slice_ids: List[int] = typer.Argument(...),
    audio_dir: Optional[Path] = typer.Option(None, "--audio", help="Copy audio here instead"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Export transcripts (or audio files) for the given slices."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        try:
            if audio_dir is not None:
                copied = export_audio(config, catalog, slice_ids, audio_dir)
                print(f"Copied {copied} audio files to {audio_dir}")
            else:
                out_path = export_transcripts(config, catalog, slice_ids)
                print(f"Exported to {out_path}")
        except CiderPressError as e:
            _fail(e)


@app.command()
def status(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Show CiderPress statistics."""
    config, catalog = _load(config_path)

    with catalog:
        catalog.init_schema()
        stats = catalog.get_stats()
        rate = catalog.historical_throughput()
    print(f"CiderPress v{VERSION}")
    print(f"{'=' * 35}")
    print(f"  Total slices:  {stats['total']}")
    print(f"  Transcribed:   {stats['transcribed']}")
    print(f"  Total hours:   {stats['total_hours']:.1f}")
    print(f"  Audio size:    {format_file_size(stats['total_bytes'])}")
    print(f"  Largest file:  {format_file_size(stats['largest_bytes'])}")
    print(f"  Average file:  {format_file_size(int(stats['average_bytes']))}")
    if stats["seconds_per_ten_minutes"]:
        print(f"  Speed:         {stats['seconds_per_ten_minutes']:.0f}s per 10 min of audio")
    if rate:
        print(f"  Throughput:    {format_file_size(int(rate))}/s")
    if stats["by_length"]:
        print("  By length:")
        for bucket, n in stats["by_length"].items():
            print(f"    {bucket:<12} {n}")
    if stats["by_year"]:
        print("  By year:")
        for year, n in stats["by_year"].items():
            print(f"    {year}  {n}")
    print("")
    print(f"  Catalog: {config.db_path}")


@app.command("list")
def list_cmd(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
    pending: bool = typer.Option(False, "--pending", help="Only untranscribed slices"),
):
    """List cataloged slices."""
    config, catalog = _load(config_path)
    with catalog:
        catalog.init_schema()
        slices = catalog.list_all()
    for s in slices:
        if pending and (s.transcribed or s.is_text):
            continue
        mark = "x" if s.transcribed else " "
        print(f"  {s.id:>5} [{mark}] {s.duration_display:>8}  {s.display_name}")


@app.command()
def info(
    slice_id: int = typer.Argument(..., help="Slice id"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c"),
):
    """Show details for a single slice."""
    config, catalog = _load(config_path)

    with catalog:
        catalog.init_schema()
        s = catalog.get(slice_id)

    if s is None:
        print(f"Slice not found: {slice_id}")
        raise typer.Exit(1)

    print(f"  ID:          {s.id}")
    print(f"  File:        {s.original_audio_file_name}")
    print(f"  Title:       {s.title}")
    print(f"  Recorded:    {s.recorded_date or 'unknown'}")
    print(f"  Duration:    {s.duration_display}")
    print(f"  Size:        {format_file_size(s.audio_file_size)}")
    print(f"  Estimate:    {s.estimated_time_to_transcribe}s")
    if s.transcribed:
        print(f"  Transcript:  {s.transcription_word_count} words "
              f"({s.transcription_model}, {s.transcription_time_taken}s)")
    else:
        print("  Transcript:  pending")


def main():
    app()
