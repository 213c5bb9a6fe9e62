"""
Tests for time-of-day interval arithmetic.
"""

import pytest

from slotkeeper.domain.intervals import (
    buffered_overlaps,
    duration_minutes,
    is_valid_time,
    normalize_time,
    overlaps,
    to_minutes,
)


class TestTimeStrings:
    """Tests for parsing and normalizing HH:MM strings."""

    @pytest.mark.parametrize("value", ["09:00", "9:00", "00:00", "23:59"])
    def test_valid_times(self, value):
        assert is_valid_time(value)

    @pytest.mark.parametrize("value", ["24:00", "9:60", "0900", "", None, 930, "09:00:00"])
    def test_invalid_times(self, value):
        assert not is_valid_time(value)

    def test_normalize_time(self):
        assert normalize_time("9:05") == "09:05"
        assert normalize_time("09:00:00") == "09:00"

    def test_minutes_and_duration(self):
        assert to_minutes("01:30") == 90
        assert duration_minutes("09:00", "10:30") == 90
        assert duration_minutes("10:30", "09:00") == -90


class TestOverlaps:
    """Tests for the half-open overlap test."""

    def test_partial_overlap(self):
        assert overlaps("09:00", "10:00", "09:30", "10:30")
        assert overlaps("09:30", "10:30", "09:00", "10:00")

    def test_containment(self):
        assert overlaps("08:00", "18:00", "09:00", "10:00")

    def test_touching_intervals_do_not_overlap(self):
        """Back-to-back intervals share only an endpoint."""
        assert not overlaps("09:00", "10:00", "10:00", "11:00")
        assert not overlaps("10:00", "11:00", "09:00", "10:00")

    def test_unpadded_times_compare_correctly(self):
        """9:00 must not sort after 10:00."""
        assert not overlaps("9:00", "9:30", "10:00", "11:00")

    @pytest.mark.parametrize(
        "first,second",
        [
            (("09:00", "10:00"), ("09:59", "10:01")),
            (("12:00", "13:00"), ("11:00", "12:01")),
            (("00:00", "23:59"), ("12:00", "12:01")),
        ],
    )
    def test_max_start_before_min_end_always_overlaps(self, first, second):
        assert max(first[0], second[0]) < min(first[1], second[1])
        assert overlaps(*first, *second)


class TestBufferedOverlaps:
    """Tests for overlap detection with a tolerance."""

    def test_zero_buffer_matches_plain_test(self):
        assert not buffered_overlaps("09:00", "10:00", "10:10", "11:00", 0)
        assert buffered_overlaps("09:00", "10:00", "09:30", "11:00", 0)

    def test_buffer_closes_small_gap(self):
        """A 10-minute gap is bridged by a 15-minute buffer."""
        assert buffered_overlaps("09:00", "10:00", "10:10", "11:00", 15)
        assert not buffered_overlaps("09:00", "10:00", "10:20", "11:00", 15)

    def test_negative_buffer_behaves_like_zero(self):
        assert not buffered_overlaps("09:00", "10:00", "10:00", "11:00", -30)

    def test_buffer_is_monotonic(self):
        """Once two intervals overlap at some buffer, every larger buffer overlaps too."""
        seen_overlap = False
        for buffer in range(0, 120, 5):
            result = buffered_overlaps("09:00", "10:00", "10:45", "11:00", buffer)
            if seen_overlap:
                assert result
            seen_overlap = seen_overlap or result
        assert seen_overlap

    def test_buffer_does_not_wrap_past_midnight(self):
        """Widening a late period never reaches early-morning periods."""
        assert not buffered_overlaps("23:50", "23:59", "00:00", "00:05", 30)
        assert not buffered_overlaps("00:05", "00:20", "23:00", "23:30", 30)
