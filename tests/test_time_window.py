"""Unit tests for relative time windows."""
from datetime import datetime

import pytest

from conftest import NOW
from processor import time_window
from processor.time_window import classify, in_window, minutes_until, resolve_start


class TestResolveStart:
    """Test cases for resolve_start."""

    def test_date_and_time(self):
        assert resolve_start('2026-10-15', '20:30') == datetime(2026, 10, 15, 20, 30)

    def test_missing_time_defaults_to_seven_pm(self):
        assert resolve_start('2026-10-15') == datetime(2026, 10, 15, 19, 0)

    def test_unparseable_time_defaults_to_seven_pm(self):
        assert resolve_start('2026-10-15', '7pm') == datetime(2026, 10, 15, 19, 0)

    def test_missing_or_bad_date(self):
        assert resolve_start(None, '20:00') is None
        assert resolve_start('', '20:00') is None
        assert resolve_start('next friday') is None


class TestClassify:
    """Test cases for classify; NOW is Wednesday 2026-10-14 12:00."""

    @pytest.mark.parametrize('start,expected', [
        (datetime(2026, 10, 14, 11, 40), time_window.NOW),
        (datetime(2026, 10, 14, 12, 30), time_window.NOW),
        (datetime(2026, 10, 14, 11, 30), time_window.NOW),
        (datetime(2026, 10, 14, 11, 29), time_window.PAST),
        (datetime(2026, 10, 14, 11, 0), time_window.PAST),
        (datetime(2026, 10, 14, 12, 31), time_window.NEXT_HOUR),
        (datetime(2026, 10, 14, 12, 45), time_window.NEXT_HOUR),
        (datetime(2026, 10, 14, 14, 30), time_window.NEXT_3_HOURS),
        (datetime(2026, 10, 14, 20, 0), time_window.TONIGHT),
        (datetime(2026, 10, 15, 0, 30), time_window.TONIGHT),
        (datetime(2026, 10, 17, 20, 0), time_window.WEEKEND),
        (datetime(2026, 10, 18, 10, 0), time_window.WEEKEND),
        (datetime(2026, 10, 18, 20, 0), time_window.FUTURE),
        (datetime(2026, 10, 15, 12, 0), time_window.FUTURE),
    ])
    def test_buckets(self, start, expected):
        assert classify(start, NOW) == expected

    def test_minutes_until_is_negative_once_started(self):
        assert minutes_until(datetime(2026, 10, 14, 11, 0), NOW) == -60
        assert minutes_until(datetime(2026, 10, 14, 13, 0), NOW) == 60


class TestInWindow:
    """Test cases for in_window."""

    def test_windows_overlap(self):
        start = datetime(2026, 10, 14, 12, 40)

        assert in_window(start, NOW, 'next-hour')
        assert in_window(start, NOW, 'next-3-hours')
        assert in_window(start, NOW, 'future')
        assert not in_window(start, NOW, 'now')
        assert not in_window(start, NOW, 'past')

    def test_tonight_excludes_long_finished_events(self):
        evening = datetime(2026, 10, 14, 20, 0)
        clock = datetime(2026, 10, 14, 21, 0)

        assert not in_window(evening, clock, 'tonight')
        assert in_window(evening, datetime(2026, 10, 14, 20, 15), 'tonight')

    def test_weekend(self):
        assert in_window(datetime(2026, 10, 17, 14, 0), NOW, 'weekend')
        assert not in_window(datetime(2026, 10, 24, 14, 0), NOW, 'weekend')
        assert not in_window(datetime(2026, 10, 16, 20, 0), NOW, 'weekend')

    def test_unknown_window_rejected(self):
        with pytest.raises(ValueError):
            in_window(NOW, NOW, 'someday')
