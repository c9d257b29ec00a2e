"""Tests for the countdown computation (pure functions, no DB)."""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app.core.countdown import (
    STARTING_DISPLAY,
    breakdown,
    classify,
    compute_countdown,
    render_units,
    time_until_live,
)

NOW = datetime(2025, 3, 1, 18, 0, 0)


def _session(**delta):
    return SimpleNamespace(start_time=NOW + timedelta(**delta))


class TestClassify:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (-5, "starting"),
            (0, "starting"),
            (0.5, "starting-now"),
            (10, "starting-now"),
            (10.5, "starting-soon"),
            (60, "starting-soon"),
            (61, "imminent"),
            (300, "imminent"),
            (301, "scheduled"),
            (86400, "scheduled"),
        ],
    )
    def test_thresholds_are_inclusive_on_upper_bound(self, delta, expected):
        assert classify(delta) == expected


class TestBreakdown:
    def test_floors_fractional_seconds(self):
        parts = breakdown(59.9)
        assert (parts.days, parts.hours, parts.minutes, parts.seconds) == (0, 0, 0, 59)

    def test_never_negative(self):
        parts = breakdown(-42)
        assert (parts.days, parts.hours, parts.minutes, parts.seconds) == (0, 0, 0, 0)

    def test_multi_day(self):
        parts = breakdown(3 * 86400 + 4 * 3600 + 5 * 60 + 6)
        assert (parts.days, parts.hours, parts.minutes, parts.seconds) == (3, 4, 5, 6)


class TestRenderUnits:
    def test_leading_zero_units_suppressed(self):
        assert render_units(breakdown(7)) == "7s"
        assert render_units(breakdown(65)) == "1m 5s"

    def test_inner_zero_units_kept(self):
        assert render_units(breakdown(2 * 3600 + 5)) == "2h 0m 5s"

    def test_days(self):
        assert render_units(breakdown(86400)) == "1d 0h 0m 0s"


class TestComputeCountdown:
    def test_past_start_is_starting_now(self):
        cd = compute_countdown(_session(seconds=-5), NOW)

        assert cd.status == "starting"
        assert cd.display == STARTING_DISPLAY
        assert cd.breakdown is None
        assert cd.seconds_remaining == 0
        assert cd.will_auto_start is True

    def test_exact_start_is_starting(self):
        cd = compute_countdown(_session(seconds=0), NOW)
        assert cd.status == "starting"

    def test_hours_away_is_scheduled(self):
        cd = compute_countdown(_session(hours=2, seconds=5), NOW)

        assert cd.status == "scheduled"
        assert cd.display == "2h 0m 5s"
        assert cd.seconds_remaining == 7205
        assert cd.will_auto_start is False

    def test_seven_seconds_away(self):
        cd = compute_countdown(_session(seconds=7), NOW)

        assert cd.status == "starting-now"
        assert cd.display == "7s"
        assert cd.breakdown.seconds == 7
        assert cd.will_auto_start is True

    def test_four_minutes_away_is_imminent(self):
        cd = compute_countdown(_session(minutes=4), NOW)
        assert cd.status == "imminent"
        assert cd.display == "4m 0s"

    def test_missing_start_time_counts_as_starting(self):
        cd = compute_countdown(SimpleNamespace(start_time=None), NOW)
        assert cd.status == "starting"


class TestTimeUntilLive:
    def test_started(self):
        assert time_until_live(NOW - timedelta(seconds=1), NOW) == "Starting now"

    def test_single_day(self):
        start = NOW + timedelta(days=1, hours=2, minutes=3, seconds=4)
        assert time_until_live(start, NOW) == "1 day, 2h 3m 4s remaining"

    def test_plural_days(self):
        start = NOW + timedelta(days=2)
        assert time_until_live(start, NOW) == "2 days, 0h 0m 0s remaining"

    def test_under_a_day(self):
        assert time_until_live(NOW + timedelta(seconds=90), NOW) == "1m 30s remaining"
