"""
Tests for the SQLite catalog.
"""
import pytest

from ciderpress.constants import APPLE_EPOCH_OFFSET
from ciderpress.errors import ConflictError, RecordingIndexError, SliceNotFoundError
from ciderpress.models import Slice

from conftest import write_recording_index


class TestSlices:
    """Insert, lookup and uniqueness."""

    def test_insert_assigns_id(self, catalog):
        s = Slice("a.m4a", audio_file_size=100, audio_file_type="m4a")
        slice_id = catalog.insert(s)
        assert s.id == slice_id
        stored = catalog.get(slice_id)
        assert stored.original_audio_file_name == "a.m4a"
        assert stored.transcribed is False
        assert catalog.exists("a.m4a")
        assert not catalog.exists("b.m4a")

    def test_duplicate_insert_conflicts(self, catalog):
        catalog.insert(Slice("a.m4a"))
        with pytest.raises(ConflictError):
            catalog.insert(Slice("a.m4a"))
        assert len(catalog.list_all()) == 1

    def test_get_missing_returns_none(self, catalog):
        assert catalog.get(42) is None

    def test_rename(self, catalog):
        slice_id = catalog.insert(Slice("a.m4a"))
        catalog.rename(slice_id, "renamed.m4a")
        assert catalog.get(slice_id).original_audio_file_name == "renamed.m4a"

    def test_rename_to_same_name_is_allowed(self, catalog):
        slice_id = catalog.insert(Slice("a.m4a"))
        catalog.rename(slice_id, "a.m4a")

    def test_rename_conflict_leaves_both_rows(self, catalog):
        a = catalog.insert(Slice("a.m4a"))
        b = catalog.insert(Slice("b.m4a"))
        with pytest.raises(ConflictError):
            catalog.rename(b, "a.m4a")
        assert catalog.get(a).original_audio_file_name == "a.m4a"
        assert catalog.get(b).original_audio_file_name == "b.m4a"

    def test_rename_missing_slice(self, catalog):
        with pytest.raises(SliceNotFoundError):
            catalog.rename(99, "x.m4a")

    def test_update_conflict_leaves_row_unchanged(self, catalog):
        catalog.insert(Slice("a.m4a"))
        b = catalog.insert(Slice("b.m4a", title="keep"))
        with pytest.raises(ConflictError):
            catalog.update(b, Slice("a.m4a", title="changed"))
        assert catalog.get(b).title == "keep"

    def test_update_missing_slice(self, catalog):
        with pytest.raises(SliceNotFoundError):
            catalog.update(7, Slice("free.m4a"))

    def test_update_overwrites_fields(self, catalog):
        slice_id = catalog.insert(Slice("a.m4a"))
        catalog.update(slice_id, Slice("a.m4a", title="New", audio_file_size=10))
        stored = catalog.get(slice_id)
        assert stored.title == "New"
        assert stored.audio_file_size == 10

    def test_update_transcription_sets_all_fields(self, catalog):
        slice_id = catalog.insert(Slice("a.m4a"))
        catalog.update_transcription(slice_id, "hi there", 2.5, 2, "tiny")
        stored = catalog.get(slice_id)
        assert stored.transcribed is True
        assert stored.transcription == "hi there"
        assert stored.transcription_time_taken == 2.5
        assert stored.transcription_word_count == 2
        assert stored.transcription_model == "tiny"

    def test_update_transcription_missing_slice(self, catalog):
        with pytest.raises(SliceNotFoundError):
            catalog.update_transcription(5, "x", 1, 1, "tiny")

    def test_clear_all(self, catalog):
        catalog.insert(Slice("a.m4a"))
        catalog.insert(Slice("b.m4a"))
        assert catalog.clear_all() == 2
        assert catalog.list_all() == []

    def test_list_pending_skips_text_and_transcribed(self, catalog):
        pending = catalog.insert(Slice("a.m4a", audio_file_type="m4a"))
        done = catalog.insert(Slice("b.m4a", audio_file_type="m4a"))
        catalog.update_transcription(done, "x", 1, 1, "tiny")
        catalog.insert(Slice("n.txt", audio_file_type="text"))
        assert catalog.list_pending_ids() == [pending]


class TestDurations:
    def test_clear_corrupt_durations(self, catalog):
        bad = catalog.insert(Slice("a.m4a", audio_time_length_seconds=90000.0))
        good = catalog.insert(Slice("b.m4a", audio_time_length_seconds=30.0))
        assert catalog.clear_corrupt_durations() == 1
        assert catalog.get(bad).audio_time_length_seconds is None
        assert catalog.get(good).audio_time_length_seconds == 30.0
        assert [s.id for s in catalog.list_missing_duration()] == [bad]

    def test_update_duration(self, catalog):
        slice_id = catalog.insert(Slice("a.m4a"))
        catalog.update_duration(slice_id, 12.5)
        assert catalog.get(slice_id).audio_time_length_seconds == 12.5


class TestHistoricalThroughput:
    def test_none_without_history(self, catalog):
        catalog.insert(Slice("a.m4a", audio_file_size=1000))
        assert catalog.historical_throughput() is None

    def test_bytes_per_second(self, catalog):
        a = catalog.insert(Slice("a.m4a", audio_file_size=60000))
        b = catalog.insert(Slice("b.m4a", audio_file_size=40000))
        zero = catalog.insert(Slice("c.m4a", audio_file_size=50000))
        catalog.update_transcription(a, "x", 3, 1, "tiny")
        catalog.update_transcription(b, "y", 1, 1, "tiny")
        catalog.update_transcription(zero, "z", 0, 1, "tiny")
        assert catalog.historical_throughput() == pytest.approx(25000.0)


class TestRecordingIndex:
    """Copying CloudRecordings.db and looking up recording dates."""

    def test_copy_is_incremental(self, catalog, tmp_path):
        index = write_recording_index(tmp_path / "CloudRecordings.db", [
            (1, "/Recordings/20240101 101500.m4a", 725000000.0, 10.0),
            (2, "20240102 090000.m4a", 725100000.0, 20.0),
        ])
        assert catalog.copy_recording_index(index) == 2
        assert catalog.copy_recording_index(index) == 0

        write_recording_index(index, [(3, "new.m4a", 725200000.0, 5.0)])
        assert catalog.copy_recording_index(index) == 1

    def test_lookup_by_suffix(self, catalog, tmp_path):
        index = write_recording_index(tmp_path / "CloudRecordings.db", [
            (1, "/Recordings/a.m4a", 725000000.0, 10.0),
            (2, "b.m4a", 725100000.0, 10.0),
        ])
        catalog.copy_recording_index(index)
        assert catalog.lookup_recording_date("a.m4a") == 725000000 + APPLE_EPOCH_OFFSET
        assert catalog.lookup_recording_date("b.m4a") == 725100000 + APPLE_EPOCH_OFFSET
        assert catalog.lookup_recording_date("c.m4a") is None

    def test_lookup_does_not_match_partial_names(self, catalog, tmp_path):
        index = write_recording_index(tmp_path / "CloudRecordings.db", [
            (1, "/Recordings/ba.m4a", 725000000.0, 10.0),
        ])
        catalog.copy_recording_index(index)
        assert catalog.lookup_recording_date("a.m4a") is None

    def test_lookup_without_index(self, catalog):
        assert catalog.lookup_recording_date("a.m4a") is None
        assert catalog.backfill_recording_dates() == 0

    def test_backfill(self, catalog, tmp_path):
        dated = catalog.insert(Slice("a.m4a"))
        undated = catalog.insert(Slice("zzz.m4a"))
        index = write_recording_index(tmp_path / "CloudRecordings.db", [
            (1, "/Recordings/a.m4a", 725000000.0, 10.0),
        ])
        catalog.copy_recording_index(index)
        assert catalog.backfill_recording_dates() == 1
        assert catalog.get(dated).recording_date == 725000000 + APPLE_EPOCH_OFFSET
        assert catalog.get(undated).recording_date is None

    def test_unreadable_index(self, catalog, tmp_path):
        garbage = tmp_path / "CloudRecordings.db"
        garbage.write_bytes(b"this is not a database at all" * 100)
        with pytest.raises(RecordingIndexError):
            catalog.copy_recording_index(garbage)
        # connection stays usable
        catalog.insert(Slice("a.m4a"))


class TestStats:
    def test_get_stats(self, catalog):
        a = catalog.insert(Slice("a.m4a", audio_file_size=1000, audio_file_type="m4a",
                                 audio_time_length_seconds=30.0, recording_date=1700000000))
        catalog.insert(Slice("b.m4a", audio_file_size=3000, audio_file_type="m4a",
                             audio_time_length_seconds=600.0))
        catalog.insert(Slice("c.m4a", audio_file_type="m4a"))
        catalog.update_transcription(a, "x", 3.5, 1, "tiny")

        stats = catalog.get_stats()
        assert stats["total"] == 3
        assert stats["transcribed"] == 1
        assert stats["total_bytes"] == 4000
        assert stats["largest_bytes"] == 3000
        assert stats["by_length"] == {"under 1 min": 1, "5-15 min": 1, "unknown": 1}
        assert stats["by_year"] == {"2023": 1}
        assert stats["seconds_per_ten_minutes"] == pytest.approx(70.0)

    def test_log_action(self, catalog):
        catalog.log_action("migrate", "start", detail={"n": 1})
        row = catalog.conn.execute("SELECT command, action, detail FROM action_log").fetchone()
        assert tuple(row) == ("migrate", "start", '{"n": 1}')
