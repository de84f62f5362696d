"""
Tests for duration analytics.
"""

from datetime import datetime, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

import pytest

from common.exceptions import NotFoundError, ValidationError
from conftest import DEVICE_ID, TENANT_ID, utc


class TestSeries:
    """Tests for the daily, weekly and monthly series."""

    @pytest.mark.asyncio
    async def test_daily_buckets(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 1, 8), 3_600_000)
        await add_session(utc(2024, 1, 1, 14), 1_800_000)
        await add_session(utc(2024, 1, 3, 9), 7_200_000)

        response = await analytics_service.get_daily_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert response.period_type == "daily"
        assert [m.period for m in response.metrics] == ["2024-01-01", "2024-01-03"]
        first = response.metrics[0]
        assert first.total_duration_ms == 5_400_000
        assert first.session_count == 2
        assert first.avg_session_duration_ms == 2_700_000

    @pytest.mark.asyncio
    async def test_average_rounds_half_up(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 1, 8), 1)
        await add_session(utc(2024, 1, 1, 9), 2)

        response = await analytics_service.get_daily_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 2)
        )

        assert response.metrics[0].avg_session_duration_ms == 2

    @pytest.mark.asyncio
    async def test_weekly_labels_and_span(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 2, 10), 1000)
        await add_session(utc(2024, 1, 4, 18), 3000)
        await add_session(utc(2024, 1, 9, 7), 5000)

        response = await analytics_service.get_weekly_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert [m.period for m in response.metrics] == ["2024-W1", "2024-W2"]
        assert response.metrics[0].start_date == utc(2024, 1, 2, 10)
        assert response.metrics[0].end_date == utc(2024, 1, 4, 18)
        assert response.metrics[0].avg_session_duration_ms == 2000

    @pytest.mark.asyncio
    async def test_monthly_buckets(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 31, 23), 1000)
        await add_session(utc(2024, 2, 1, 0), 2000)

        response = await analytics_service.get_monthly_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 3, 1)
        )

        assert [m.period for m in response.metrics] == ["2024-01", "2024-02"]
        assert response.metrics[1].start_date == utc(2024, 2, 1)
        assert response.metrics[1].end_date == utc(2024, 2, 29, 23, 59, 59, 999000)

    @pytest.mark.asyncio
    async def test_range_is_inclusive_on_start_time(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 1, 0), 1000)
        await add_session(utc(2024, 1, 2, 0), 1000)
        await add_session(utc(2024, 1, 2, 0, 0, 1), 1000)

        response = await analytics_service.get_daily_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 2)
        )

        assert sum(m.session_count for m in response.metrics) == 2

    @pytest.mark.asyncio
    async def test_empty_range_yields_empty_series(self, analytics_service):
        response = await analytics_service.get_daily_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert response.metrics == []
        assert response.date_range.from_ == utc(2024, 1, 1)

    @pytest.mark.asyncio
    async def test_buckets_use_canonical_timezone(self, analytics_service, add_session):
        analytics_service.tz = ZoneInfo("America/New_York")
        await add_session(utc(2024, 1, 2, 3, 0), 1000)

        response = await analytics_service.get_daily_duration(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 3)
        )

        assert response.metrics[0].period == "2024-01-01"

    @pytest.mark.asyncio
    async def test_other_tenant_sees_nothing(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 1, 8), 1000)

        response = await analytics_service.get_daily_duration(
            "someone-else", DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert response.metrics == []


class TestResolveRange:
    def test_defaults_to_trailing_window(self, analytics_service):
        now = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        with patch.object(analytics_service, "_now", return_value=now):
            date_from, date_to = analytics_service.resolve_range(None, None)

        assert date_to == now
        assert (date_to - date_from).days == analytics_service.settings.ANALYTICS_DEFAULT_RANGE_DAYS

    def test_invalid_parameter_is_rejected(self, analytics_service):
        with pytest.raises(ValidationError, match="Invalid date_from"):
            analytics_service.resolve_range("not-a-date", None)


class TestSummary:
    """Tests for the device summary."""

    @pytest.mark.asyncio
    async def test_summary_metrics_and_names(self, analytics_service, add_session):
        await add_session(utc(2024, 1, 1, 8), 1000)
        await add_session(utc(2024, 1, 2, 8), 4000)
        await add_session(utc(2024, 1, 3, 8), 2500)

        summary = await analytics_service.get_summary(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert summary.device_name == "Press 1"
        assert summary.factory_name == "Plant A"
        assert summary.metrics.session_count == 3
        assert summary.metrics.total_duration_ms == 7500
        assert summary.metrics.avg_session_duration_ms == 2500
        assert summary.metrics.min_session_duration_ms == 1000
        assert summary.metrics.max_session_duration_ms == 4000

    @pytest.mark.asyncio
    async def test_buckets_add_up_to_summary_across_day_boundaries(self, analytics_service, add_session):
        date_from, date_to = utc(2024, 1, 30), utc(2024, 2, 2, 23, 59, 59)
        starts = [
            utc(2024, 1, 29, 23, 59, 59, 999000),  # before the range
            date_from,
            utc(2024, 1, 30, 23, 59, 59, 999000),
            utc(2024, 1, 31),
            utc(2024, 1, 31, 12),
            utc(2024, 2, 1, 0, 0, 0, 1000),
            utc(2024, 2, 1, 23, 30),
            date_to,
            utc(2024, 2, 3),  # after the range
        ]
        for index, start in enumerate(starts):
            await add_session(start, 60_000 + index)

        summary = await analytics_service.get_summary(TENANT_ID, DEVICE_ID, date_from, date_to)
        daily = await analytics_service.get_daily_duration(TENANT_ID, DEVICE_ID, date_from, date_to)
        weekly = await analytics_service.get_weekly_duration(TENANT_ID, DEVICE_ID, date_from, date_to)
        monthly = await analytics_service.get_monthly_duration(TENANT_ID, DEVICE_ID, date_from, date_to)

        assert summary.metrics.session_count == 7
        assert [m.period for m in daily.metrics] == ["2024-01-30", "2024-01-31", "2024-02-01", "2024-02-02"]
        assert [m.session_count for m in daily.metrics] == [2, 2, 2, 1]
        for series in (daily, weekly, monthly):
            assert sum(m.session_count for m in series.metrics) == summary.metrics.session_count
            assert sum(m.total_duration_ms for m in series.metrics) == summary.metrics.total_duration_ms

    @pytest.mark.asyncio
    async def test_summary_without_sessions_is_all_zero(self, analytics_service):
        summary = await analytics_service.get_summary(
            TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31)
        )

        assert summary.metrics.model_dump() == {
            "total_duration_ms": 0,
            "session_count": 0,
            "avg_session_duration_ms": 0,
            "min_session_duration_ms": 0,
            "max_session_duration_ms": 0,
        }

    @pytest.mark.asyncio
    async def test_unknown_device_is_not_found(self, analytics_service):
        with pytest.raises(NotFoundError, match="Device not found"):
            await analytics_service.get_summary(
                TENANT_ID, "DEV-UNKNOWN", utc(2024, 1, 1), utc(2024, 1, 31)
            )


class TestPeriodMetrics:
    """Tests for the current-period metric."""

    @pytest.mark.asyncio
    async def test_week_runs_sunday_to_saturday(self, analytics_service, add_session):
        await add_session(utc(2023, 12, 31, 9), 1000)
        await add_session(utc(2024, 1, 6, 23), 3000)
        await add_session(utc(2024, 1, 7, 0), 9000)

        metric = await analytics_service.get_period_metrics(
            TENANT_ID, DEVICE_ID, "week", "2024-01-03T12:00:00Z"
        )

        assert metric.period == "week"
        assert metric.start_date == utc(2023, 12, 31)
        assert metric.end_date == utc(2024, 1, 6, 23, 59, 59, 999000)
        assert metric.session_count == 2
        assert metric.total_duration_ms == 4000
        assert metric.avg_session_duration_ms == 2000

    @pytest.mark.asyncio
    async def test_day_without_sessions_is_zero(self, analytics_service):
        metric = await analytics_service.get_period_metrics(
            TENANT_ID, DEVICE_ID, "day", "2024-01-03T12:00:00Z"
        )

        assert metric.session_count == 0
        assert metric.avg_session_duration_ms == 0

    @pytest.mark.asyncio
    async def test_invalid_period_is_rejected(self, analytics_service):
        with pytest.raises(ValidationError, match="Invalid period. Use: day, week, or month"):
            await analytics_service.get_period_metrics(TENANT_ID, DEVICE_ID, "year")
