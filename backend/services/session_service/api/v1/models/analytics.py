"""
Duration Analytics API Models.

Bucketed metrics are derived on every read and never persisted. Instants are
rendered as ISO-8601 UTC with millisecond precision.
"""

from pydantic import BaseModel, ConfigDict, Field

from services.session_service.api.v1.models.sessions import UtcDatetime


class DateRange(BaseModel):
    """Inclusive instant range, serialised as {"from": ..., "to": ...}."""

    model_config = ConfigDict(populate_by_name=True)

    from_: UtcDatetime = Field(alias="from")
    to: UtcDatetime


class DurationMetric(BaseModel):
    """
    Bucketed duration metric.

    Attributes:
        period: Bucket label ("2024-01-15", "2024-W3", "2024-01") or the
            requested period type for period metrics.
        start_date: Start of the bucket span.
        end_date: End of the bucket span.
        total_duration_ms: Sum of session durations in the bucket.
        session_count: Number of sessions whose start_time falls in the bucket.
        avg_session_duration_ms: Average duration, rounded to the nearest ms.
    """

    period: str
    start_date: UtcDatetime
    end_date: UtcDatetime
    total_duration_ms: int
    session_count: int
    avg_session_duration_ms: int


class DurationSeriesResponse(BaseModel):
    device_id: str
    period_type: str
    date_range: DateRange
    metrics: list[DurationMetric]


class SummaryMetrics(BaseModel):
    total_duration_ms: int = 0
    session_count: int = 0
    avg_session_duration_ms: int = 0
    min_session_duration_ms: int = 0
    max_session_duration_ms: int = 0


class DeviceSummaryResponse(BaseModel):
    device_id: str
    device_name: str
    factory_name: str
    period: DateRange
    metrics: SummaryMetrics

