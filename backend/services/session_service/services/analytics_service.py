"""
Duration Analytics Service - Period-bucketed session metrics.

Every figure is recomputed from the session store on each read; nothing is
cached. All queries are tenant- and device-scoped and match sessions by
``start_time`` within an inclusive ``[date_from, date_to]`` range.

Query Shapes:
    - daily / weekly / monthly: ordered bucket series, one bucket per calendar
      day, ISO week or calendar month holding at least one session. Buckets are
      folded in Python from a streamed (start_time, duration_ms) projection, in
      the canonical time zone.
    - summary: single metric with min/max durations plus device and factory
      names; the only query that reports an unknown device.
    - period: single metric for the day, Sunday-to-Saturday week or month that
      contains a reference instant; all zeros when there are no sessions.

"No data yet" is a normal state: empty ranges yield empty series and all-zero
metrics, never errors.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from loguru import logger

from common.config import get_settings
from common.config.settings import SessionServiceSettings
from common.exceptions import NotFoundError, ValidationError
from services.session_service.api.v1.models import (
    DateRange,
    DeviceSummaryResponse,
    DurationMetric,
    DurationSeriesResponse,
    SummaryMetrics,
)
from services.session_service.database.device_registry import DeviceRegistry, SqlDeviceRegistry
from services.session_service.database.session_repository import SessionRepository
from services.session_service.services.periods import (
    BucketFolder,
    Granularity,
    PeriodType,
    period_bounds,
    round_half_up_div,
)
from services.session_service.utils import parse_timestamp_param

UNKNOWN_FACTORY = "Unknown"


class AnalyticsService:
    """
    Service computing duration analytics for a device.

    Attributes:
        repository: Session store.
        registry: Device/factory registry, used by the summary.
        settings: Session service settings (canonical zone, default range).
    """

    def __init__(
        self,
        repository: SessionRepository | None = None,
        registry: DeviceRegistry | None = None,
        settings: SessionServiceSettings | None = None,
    ) -> None:
        self.repository = repository or SessionRepository()
        self.registry = registry or SqlDeviceRegistry()
        self.settings = settings or get_settings("session-service")
        self.tz = ZoneInfo(self.settings.CANONICAL_TIMEZONE)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def resolve_range(
        self, date_from: str | None, date_to: str | None
    ) -> tuple[datetime, datetime]:
        """
        Parse request range parameters, defaulting to the last
        ANALYTICS_DEFAULT_RANGE_DAYS days ending now.

        Raises:
            ValidationError: A parameter is not ISO-8601.
        """
        parsed_from = parse_timestamp_param(date_from, "date_from")
        parsed_to = parse_timestamp_param(date_to, "date_to")
        now = self._now()
        return (
            parsed_from or now - timedelta(days=self.settings.ANALYTICS_DEFAULT_RANGE_DAYS),
            parsed_to or now,
        )

    async def _series(
        self,
        granularity: Granularity,
        tenant_id: str,
        device_id: str,
        date_from: datetime,
        date_to: datetime,
    ) -> DurationSeriesResponse:
        folder = BucketFolder(granularity, self.tz)
        async for start_time, duration_ms in self.repository.stream_start_durations(
            tenant_id, device_id, date_from, date_to
        ):
            folder.add(start_time, duration_ms)

        metrics = [DurationMetric(**bucket) for bucket in folder.results()]
        logger.debug(
            f"{granularity.value} analytics for device {device_id}: {len(metrics)} buckets"
        )
        return DurationSeriesResponse(
            device_id=device_id,
            period_type=granularity.value,
            date_range=DateRange(from_=date_from, to=date_to),
            metrics=metrics,
        )

    async def get_daily_duration(
        self, tenant_id: str, device_id: str, date_from: datetime, date_to: datetime
    ) -> DurationSeriesResponse:
        return await self._series(Granularity.DAILY, tenant_id, device_id, date_from, date_to)

    async def get_weekly_duration(
        self, tenant_id: str, device_id: str, date_from: datetime, date_to: datetime
    ) -> DurationSeriesResponse:
        return await self._series(Granularity.WEEKLY, tenant_id, device_id, date_from, date_to)

    async def get_monthly_duration(
        self, tenant_id: str, device_id: str, date_from: datetime, date_to: datetime
    ) -> DurationSeriesResponse:
        return await self._series(Granularity.MONTHLY, tenant_id, device_id, date_from, date_to)

    async def get_summary(
        self, tenant_id: str, device_id: str, date_from: datetime, date_to: datetime
    ) -> DeviceSummaryResponse:
        """
        Summarise a device's sessions over a range.

        Raises:
            NotFoundError: The device is not registered for the tenant.
        """
        device = await self.registry.resolve_device(tenant_id, device_id)
        if device is None:
            msg = "Device not found"
            raise NotFoundError(msg)

        factory_name = await self.registry.get_factory_name(device.factory_id)
        aggregate = await self.repository.aggregate(tenant_id, device_id, date_from, date_to)

        return DeviceSummaryResponse(
            device_id=device_id,
            device_name=device.name,
            factory_name=factory_name or UNKNOWN_FACTORY,
            period=DateRange(from_=date_from, to=date_to),
            metrics=SummaryMetrics(
                total_duration_ms=aggregate.total_duration_ms,
                session_count=aggregate.session_count,
                avg_session_duration_ms=round_half_up_div(
                    aggregate.total_duration_ms, aggregate.session_count
                ),
                min_session_duration_ms=aggregate.min_session_duration_ms,
                max_session_duration_ms=aggregate.max_session_duration_ms,
            ),
        )

    async def get_period_metrics(
        self,
        tenant_id: str,
        device_id: str,
        period: str,
        reference_date: str | None = None,
    ) -> DurationMetric:
        """
        Metric for the current day, week or month containing ``reference_date``.

        Raises:
            ValidationError: ``period`` is not day/week/month or ``reference_date``
                is not ISO-8601.
        """
        try:
            period_type = PeriodType(period)
        except ValueError as e:
            msg = "Invalid period. Use: day, week, or month"
            raise ValidationError(msg) from e

        reference = parse_timestamp_param(reference_date, "reference_date") or self._now()
        start, end = period_bounds(period_type, reference, self.tz)
        aggregate = await self.repository.aggregate(tenant_id, device_id, start, end)

        return DurationMetric(
            period=period_type.value,
            start_date=start,
            end_date=end,
            total_duration_ms=aggregate.total_duration_ms,
            session_count=aggregate.session_count,
            avg_session_duration_ms=round_half_up_div(
                aggregate.total_duration_ms, aggregate.session_count
            ),
        )
