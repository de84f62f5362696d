"""
Calendar periods and bucket folding for duration analytics.

Everything in this module is pure: no I/O, no settings. Callers pass the
canonical time zone explicitly.

Bucket keys are derived from a session's ``start_time`` converted to the
canonical zone:

    - day:   label ``YYYY-MM-DD``, span 00:00:00.000 to 23:59:59.999 of that day
    - week:  label ``<isoyear>-W<isoweek>``, span = earliest to latest start_time
             observed in the bucket
    - month: label ``YYYY-MM``, span first day 00:00:00.000 to last day 23:59:59.999

Averages are integer milliseconds, rounded half up.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

ONE_MS = timedelta(milliseconds=1)


class Granularity(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PeriodType(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def round_half_up_div(total: int, count: int) -> int:
    """Integer ``total / count`` rounded half up. Returns 0 when count is 0."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def _start_of_day(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _end_of_day(day: date, tz: ZoneInfo) -> datetime:
    # 23:59:59.999 in the zone; computed from the next midnight so DST days work
    return _start_of_day(day + timedelta(days=1), tz) - ONE_MS


def day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    return _start_of_day(day, tz), _end_of_day(day, tz)


def month_bounds(year: int, month: int, tz: ZoneInfo) -> tuple[datetime, datetime]:
    last_day = monthrange(year, month)[1]
    return _start_of_day(date(year, month, 1), tz), _end_of_day(date(year, month, last_day), tz)


def week_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Sunday-to-Saturday week containing ``day``."""
    days_since_sunday = (day.weekday() + 1) % 7
    sunday = day - timedelta(days=days_since_sunday)
    return _start_of_day(sunday, tz), _end_of_day(sunday + timedelta(days=6), tz)


def period_bounds(
    period: PeriodType, reference: datetime, tz: ZoneInfo
) -> tuple[datetime, datetime]:
    """
    Return the inclusive ``[from, to]`` span of the day, week or month containing
    ``reference`` in zone ``tz``.
    """
    local_day = reference.astimezone(tz).date()
    if period is PeriodType.DAY:
        return day_bounds(local_day, tz)
    if period is PeriodType.WEEK:
        return week_bounds(local_day, tz)
    return month_bounds(local_day.year, local_day.month, tz)


def bucket_key(granularity: Granularity, local_start: datetime) -> tuple[int, ...]:
    """Sortable key identifying the bucket a local start_time falls into."""
    if granularity is Granularity.DAILY:
        return (local_start.year, local_start.month, local_start.day)
    if granularity is Granularity.WEEKLY:
        iso = local_start.isocalendar()
        return (iso[0], iso[1])
    return (local_start.year, local_start.month)


def bucket_label(granularity: Granularity, key: tuple[int, ...]) -> str:
    if granularity is Granularity.DAILY:
        return f"{key[0]:04d}-{key[1]:02d}-{key[2]:02d}"
    if granularity is Granularity.WEEKLY:
        return f"{key[0]}-W{key[1]}"
    return f"{key[0]:04d}-{key[1]:02d}"


@dataclass
class Bucket:
    """Running totals for one bucket."""

    key: tuple[int, ...]
    total_duration_ms: int = 0
    session_count: int = 0
    first_start: datetime | None = None
    last_start: datetime | None = None

    def add(self, start_time: datetime, duration_ms: int) -> None:
        self.total_duration_ms += duration_ms
        self.session_count += 1
        if self.first_start is None or start_time < self.first_start:
            self.first_start = start_time
        if self.last_start is None or start_time > self.last_start:
            self.last_start = start_time

    @property
    def avg_session_duration_ms(self) -> int:
        return round_half_up_div(self.total_duration_ms, self.session_count)


@dataclass
class BucketFolder:
    """
    Fold ``(start_time, duration_ms)`` pairs into calendar buckets.

    Memory is bounded by the number of buckets, not the number of sessions.

    Example:
        ```python
        folder = BucketFolder(Granularity.DAILY, ZoneInfo("UTC"))
        for start_time, duration_ms in rows:
            folder.add(start_time, duration_ms)
        metrics = folder.results()
        ```
    """

    granularity: Granularity
    tz: ZoneInfo
    _buckets: dict[tuple[int, ...], Bucket] = field(default_factory=dict)

    def add(self, start_time: datetime, duration_ms: int) -> None:
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        local_start = start_time.astimezone(self.tz)
        key = bucket_key(self.granularity, local_start)
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = Bucket(key=key)
        bucket.add(local_start, duration_ms)

    def span(self, bucket: Bucket) -> tuple[datetime, datetime]:
        if self.granularity is Granularity.DAILY:
            return day_bounds(date(*bucket.key), self.tz)
        if self.granularity is Granularity.MONTHLY:
            return month_bounds(bucket.key[0], bucket.key[1], self.tz)
        # Weekly spans come from the observed data
        return bucket.first_start, bucket.last_start  # type: ignore[return-value]

    def results(self) -> list[dict[str, Any]]:
        """Bucketed metrics in ascending chronological order of the bucket key."""
        metrics = []
        for key in sorted(self._buckets):
            bucket = self._buckets[key]
            start, end = self.span(bucket)
            metrics.append(
                {
                    "period": bucket_label(self.granularity, key),
                    "start_date": start,
                    "end_date": end,
                    "total_duration_ms": bucket.total_duration_ms,
                    "session_count": bucket.session_count,
                    "avg_session_duration_ms": bucket.avg_session_duration_ms,
                }
            )
        return metrics
