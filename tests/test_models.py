"""
Tests for estimates, models and text helpers.
"""
from ciderpress.models import Slice, TranscriptionProgress, estimate_transcription_time
from ciderpress.util import format_count_line, sanitize_name, strip_html_tags, word_count


class TestEstimateTranscriptionTime:
    """Processing-time estimates from duration or file size."""

    def test_ten_minutes_is_35_seconds(self):
        assert estimate_transcription_time(0, 600.0) == 35

    def test_one_minute_rounds_up(self):
        assert estimate_transcription_time(0, 60.0) == 4

    def test_short_recording_is_at_least_one(self):
        assert estimate_transcription_time(0, 5.0) == 1
        assert estimate_transcription_time(0, 0.1) == 1

    def test_size_fallback_assumes_one_mib_per_minute(self):
        assert estimate_transcription_time(1_048_576, None) == 4
        assert estimate_transcription_time(10 * 1_048_576, None) == 35

    def test_zero_duration_uses_size(self):
        assert estimate_transcription_time(10 * 1_048_576, 0.0) == 35

    def test_empty_file_is_at_least_one(self):
        assert estimate_transcription_time(0, None) == 1

    def test_monotonic_in_duration(self):
        previous = 0
        for seconds in range(1, 7200, 37):
            current = estimate_transcription_time(0, float(seconds))
            assert current >= previous
            previous = current

    def test_monotonic_in_size(self):
        previous = 0
        for size in range(0, 50_000_000, 999_983):
            current = estimate_transcription_time(size, None)
            assert current >= previous
            previous = current


class TestSlice:
    def test_duration_display(self):
        assert Slice("a.m4a").duration_display == "unknown"
        assert Slice("a.m4a", audio_time_length_seconds=75.4).duration_display == "1:15"
        assert Slice("a.m4a", audio_time_length_seconds=3725).duration_display == "1:02:05"

    def test_display_name_prefers_title(self):
        assert Slice("a.m4a").display_name == "a.m4a"
        assert Slice("a.m4a", title="Standup").display_name == "Standup"

    def test_recorded_date(self):
        assert Slice("a.m4a", recording_date=1700000000).recorded_date == "2023-11-14"

    def test_text_slice(self):
        assert Slice("n.txt", audio_file_type="text").is_text
        assert not Slice("a.m4a", audio_file_type="m4a").is_text

    def test_progress_finished_slices(self):
        p = TranscriptionProgress(completed_slices=3, failed_slices=2)
        assert p.finished_slices == 5


class TestTextHelpers:
    def test_word_count(self):
        assert word_count("Hello world") == 2
        assert word_count("  spaced   out\ttext\n") == 3
        assert word_count("") == 0

    def test_sanitize_removes_path_characters(self):
        assert sanitize_name('Budget: Q3/Q4 "plan"?') == "Budget Q3Q4 plan"
        assert sanitize_name(r"a\b*c<d>e|f") == "abcdef"

    def test_sanitize_truncates_then_trims(self):
        text = "word " * 20
        result = sanitize_name(text)
        assert len(result) <= 50
        assert result == result.strip()

    def test_sanitize_can_be_empty(self):
        assert sanitize_name('  ?*:  ') == ""

    def test_strip_html_tags(self):
        assert strip_html_tags("<p>Hi <b>there</b></p>") == "Hi there"

    def test_format_count_line(self):
        assert format_count_line({"copied": 2, "skipped": 0, "errors": 1}) == "2 copied, 1 errors"
        assert format_count_line({"copied": 0}) == "no changes"
