"""
Tests for utils/progress.py: pure functions, the clock is passed in.
"""
from datetime import datetime, timedelta, timezone

import pytest

from utils.progress import (
    compute_progress, format_subtitle, needs_reset, parse_timestamp, progress_bar, to_utc_iso,
)


class TestNeedsReset:
    NOW = datetime(2024, 3, 10, 12, 0)

    def test_same_day(self):
        assert needs_reset('2024-03-10T00:00:01', self.NOW) is False

    def test_yesterday(self):
        assert needs_reset('2024-03-09T23:59:59', self.NOW) is True

    def test_long_ago_same_as_yesterday(self):
        assert needs_reset('2024-02-28T12:00:00', self.NOW) is True

    def test_missing_or_garbage(self):
        assert needs_reset(None, self.NOW) is True
        assert needs_reset('', self.NOW) is True
        assert needs_reset('not a date', self.NOW) is True

    def test_aware_timestamp_compared_in_local_time(self):
        now = datetime.now()
        stamp = now.astimezone(timezone.utc).isoformat()
        assert needs_reset(stamp, now) is False

    def test_aware_timestamp_days_ago(self):
        now = datetime.now()
        stamp = (now - timedelta(days=3)).astimezone(timezone.utc).isoformat()
        assert needs_reset(stamp, now) is True


class TestProgress:
    def test_ratio(self):
        assert compute_progress(1, 4) == pytest.approx(0.25)

    def test_zero_total(self):
        assert compute_progress(3, 0) == 0.0

    def test_can_exceed_one(self):
        # practicing more than the deck holds is not clamped
        assert compute_progress(3, 2) == pytest.approx(1.5)

    def test_subtitle(self):
        assert format_subtitle(0, 0) == 'today: 0/0 cards'
        assert format_subtitle(1, 1) == 'today: 1/1 cards'

    def test_bar(self):
        assert progress_bar(0.0) == '□' * 10
        assert progress_bar(0.5) == '■' * 5 + '□' * 5
        assert progress_bar(2.0, width=4) == '■' * 4


def test_parse_timestamp():
    assert parse_timestamp('2024-03-10T09:30:00') == datetime(2024, 3, 10, 9, 30)
    assert parse_timestamp(None) is None


class TestToUtcIso:
    def test_offset_converted(self):
        assert to_utc_iso('2024-03-10T10:00:00+05:00') == '2024-03-10T05:00:00.000000+00:00'

    def test_naive_is_local_time(self):
        local = datetime(2024, 3, 10, 9, 30)
        assert to_utc_iso(local) == local.astimezone(timezone.utc).isoformat(timespec='microseconds')

    def test_garbage(self):
        with pytest.raises(ValueError):
            to_utc_iso('not a date')
