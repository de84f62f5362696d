"""
Duration Analytics API Endpoints

Endpoints:
    - GET /devices/{device_id}/analytics/daily
    - GET /devices/{device_id}/analytics/weekly
    - GET /devices/{device_id}/analytics/monthly
    - GET /devices/{device_id}/analytics/summary (404 for unknown device)
    - GET /devices/{device_id}/analytics/period (400 for invalid period)

``date_from`` / ``date_to`` are optional ISO-8601 instants; when omitted the
range ends now and spans ANALYTICS_DEFAULT_RANGE_DAYS days.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from common.exceptions import ServiceError, handle_database_error
from services.session_service.api.dependencies import (
    AuthenticatedPrincipal,
    get_analytics_service,
    get_principal,
)
from services.session_service.api.v1.models import (
    DeviceSummaryResponse,
    DurationMetric,
    DurationSeriesResponse,
)
from services.session_service.services.analytics_service import AnalyticsService
from services.session_service.services.periods import Granularity

router = APIRouter()

_DATE_FROM = Query(default=None, description="ISO-8601 range start (inclusive)")
_DATE_TO = Query(default=None, description="ISO-8601 range end (inclusive)")


async def _series(
    granularity: Granularity,
    device_id: str,
    date_from: str | None,
    date_to: str | None,
    principal: AuthenticatedPrincipal,
    service: AnalyticsService,
) -> DurationSeriesResponse:
    try:
        range_from, range_to = service.resolve_range(date_from, date_to)
        if granularity is Granularity.DAILY:
            return await service.get_daily_duration(principal.tenant_id, device_id, range_from, range_to)
        if granularity is Granularity.WEEKLY:
            return await service.get_weekly_duration(principal.tenant_id, device_id, range_from, range_to)
        return await service.get_monthly_duration(principal.tenant_id, device_id, range_from, range_to)

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = f"computing {granularity.value} analytics"
        raise handle_database_error(msg, e)


@router.get("/daily", response_model=DurationSeriesResponse)
async def get_daily_analytics(
    device_id: str,
    date_from: str | None = _DATE_FROM,
    date_to: str | None = _DATE_TO,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DurationSeriesResponse:
    """Duration per calendar day."""
    return await _series(Granularity.DAILY, device_id, date_from, date_to, principal, service)


@router.get("/weekly", response_model=DurationSeriesResponse)
async def get_weekly_analytics(
    device_id: str,
    date_from: str | None = _DATE_FROM,
    date_to: str | None = _DATE_TO,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DurationSeriesResponse:
    """Duration per ISO week."""
    return await _series(Granularity.WEEKLY, device_id, date_from, date_to, principal, service)


@router.get("/monthly", response_model=DurationSeriesResponse)
async def get_monthly_analytics(
    device_id: str,
    date_from: str | None = _DATE_FROM,
    date_to: str | None = _DATE_TO,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DurationSeriesResponse:
    """Duration per calendar month."""
    return await _series(Granularity.MONTHLY, device_id, date_from, date_to, principal, service)


@router.get("/summary", response_model=DeviceSummaryResponse)
async def get_analytics_summary(
    device_id: str,
    date_from: str | None = _DATE_FROM,
    date_to: str | None = _DATE_TO,
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DeviceSummaryResponse:
    """
    Totals, average, min and max session duration over the range, with the
    device and factory names.
    """
    try:
        range_from, range_to = service.resolve_range(date_from, date_to)
        return await service.get_summary(principal.tenant_id, device_id, range_from, range_to)

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "computing analytics summary"
        raise handle_database_error(msg, e)


@router.get("/period", response_model=DurationMetric)
async def get_period_analytics(
    device_id: str,
    period: str = Query(default="day", description="day, week or month"),
    reference_date: str | None = Query(default=None, description="ISO-8601 instant inside the period"),
    principal: AuthenticatedPrincipal = Depends(get_principal),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DurationMetric:
    """Metric for the current day, Sunday-to-Saturday week, or month."""
    try:
        return await service.get_period_metrics(
            principal.tenant_id, device_id, period, reference_date
        )

    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        msg = "computing period analytics"
        raise handle_database_error(msg, e)
