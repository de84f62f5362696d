"""
Tests for calendar bucketing and period bounds.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from services.session_service.services.periods import (
    BucketFolder,
    Granularity,
    PeriodType,
    bucket_label,
    day_bounds,
    month_bounds,
    period_bounds,
    round_half_up_div,
    week_bounds,
)

UTC = ZoneInfo("UTC")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestRoundHalfUp:
    """Tests for the average rounding rule."""

    @pytest.mark.parametrize(
        "total,count,expected",
        [(3, 2, 2), (5, 2, 3), (7, 3, 2), (8, 3, 3), (2700000, 1, 2700000)],
    )
    def test_rounds_half_up(self, total, count, expected):
        assert round_half_up_div(total, count) == expected

    def test_zero_count_is_zero(self):
        assert round_half_up_div(0, 0) == 0


class TestBounds:
    """Tests for day, week and month boundaries."""

    def test_day_bounds_cover_whole_day_to_the_millisecond(self):
        start, end = day_bounds(date(2024, 1, 1), UTC)

        assert start == utc(2024, 1, 1, 0, 0, 0)
        assert end == utc(2024, 1, 1, 23, 59, 59, 999000)

    def test_week_starts_on_sunday(self):
        # 2024-01-03 is a Wednesday
        start, end = week_bounds(date(2024, 1, 3), UTC)

        assert start == utc(2023, 12, 31)
        assert end == utc(2024, 1, 6, 23, 59, 59, 999000)

    def test_sunday_is_its_own_week_start(self):
        start, _ = week_bounds(date(2024, 1, 7), UTC)

        assert start == utc(2024, 1, 7)

    def test_month_bounds_handle_leap_february(self):
        start, end = month_bounds(2024, 2, UTC)

        assert start == utc(2024, 2, 1)
        assert end == utc(2024, 2, 29, 23, 59, 59, 999000)

    def test_month_bounds_handle_december(self):
        _, end = month_bounds(2023, 12, UTC)

        assert end == utc(2023, 12, 31, 23, 59, 59, 999000)

    def test_period_bounds_use_canonical_zone(self):
        tz = ZoneInfo("America/New_York")
        # 03:00 UTC on Jan 2 is still Jan 1 in New York
        start, end = period_bounds(PeriodType.DAY, utc(2024, 1, 2, 3, 0), tz)

        assert start == utc(2024, 1, 1, 5, 0)
        assert end == utc(2024, 1, 2, 4, 59, 59, 999000)


class TestBucketLabels:
    def test_weekly_label_is_not_zero_padded(self):
        assert bucket_label(Granularity.WEEKLY, (2024, 1)) == "2024-W1"

    def test_daily_and_monthly_labels(self):
        assert bucket_label(Granularity.DAILY, (2024, 1, 5)) == "2024-01-05"
        assert bucket_label(Granularity.MONTHLY, (2024, 3)) == "2024-03"


class TestBucketFolder:
    """Tests for folding sessions into buckets."""

    def test_daily_buckets_sum_and_average(self):
        folder = BucketFolder(Granularity.DAILY, UTC)
        folder.add(utc(2024, 1, 1, 8), 3_600_000)
        folder.add(utc(2024, 1, 1, 14), 1_800_000)
        folder.add(utc(2024, 1, 3, 9), 7_200_000)

        results = folder.results()

        assert [r["period"] for r in results] == ["2024-01-01", "2024-01-03"]
        assert results[0]["total_duration_ms"] == 5_400_000
        assert results[0]["session_count"] == 2
        assert results[0]["avg_session_duration_ms"] == 2_700_000
        assert results[0]["start_date"] == utc(2024, 1, 1)
        assert results[0]["end_date"] == utc(2024, 1, 1, 23, 59, 59, 999000)

    def test_results_are_sorted_regardless_of_input_order(self):
        folder = BucketFolder(Granularity.MONTHLY, UTC)
        folder.add(utc(2024, 3, 1), 1000)
        folder.add(utc(2023, 12, 31), 1000)
        folder.add(utc(2024, 1, 15), 1000)

        assert [r["period"] for r in folder.results()] == ["2023-12", "2024-01", "2024-03"]

    def test_weekly_uses_iso_year_and_observed_span(self):
        folder = BucketFolder(Granularity.WEEKLY, UTC)
        # Sunday 2023-12-31 belongs to ISO week 2023-W52
        folder.add(utc(2023, 12, 31, 10), 1000)
        folder.add(utc(2024, 1, 2, 10), 2000)
        folder.add(utc(2024, 1, 4, 18), 4000)

        results = folder.results()

        assert [r["period"] for r in results] == ["2023-W52", "2024-W1"]
        week_one = results[1]
        assert week_one["start_date"] == utc(2024, 1, 2, 10)
        assert week_one["end_date"] == utc(2024, 1, 4, 18)
        assert week_one["session_count"] == 2

    def test_buckets_follow_canonical_zone(self):
        folder = BucketFolder(Granularity.DAILY, ZoneInfo("America/New_York"))
        folder.add(utc(2024, 1, 2, 3, 0), 1000)

        assert folder.results()[0]["period"] == "2024-01-01"

    def test_empty_folder_has_no_buckets(self):
        assert BucketFolder(Granularity.DAILY, UTC).results() == []
