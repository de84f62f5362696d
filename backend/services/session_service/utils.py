"""
Utility Functions for the Session Service.

This module provides helpers shared across ingestion, analytics and exports:
timestamp parsing and rendering, duration formatting, and a helper for
running blocking work in a thread executor.
"""

import asyncio
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Any, Callable

from common.exceptions import ValidationError


def parse_timestamp(value: str | datetime) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a ``Z`` suffix or a numeric offset. Naive timestamps are read as UTC.

    Raises:
        ValueError: The value is not a valid ISO-8601 timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if not text:
            msg = "empty timestamp"
            raise ValueError(msg)
        if text[-1] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_timestamp_param(value: str | None, name: str) -> datetime | None:
    """
    Parse an optional ISO-8601 request parameter.

    Raises:
        ValidationError: The value is present but not ISO-8601.
    """
    if value is None or not value.strip():
        return None
    try:
        return parse_timestamp(value)
    except ValueError as e:
        msg = f"Invalid {name}. Use ISO-8601."
        raise ValidationError(msg) from e


def isoformat_utc(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with millisecond precision, e.g. ``2024-01-01T08:00:00.000Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def duration_ms_between(start: datetime, stop: datetime) -> int:
    """Exact ``stop - start`` in whole milliseconds."""
    delta = stop - start
    return (delta.days * 86_400_000) + (delta.seconds * 1000) + (delta.microseconds // 1000)


def format_duration(duration_ms: int) -> str:
    """Format milliseconds as ``HH:MM:SS``. Hours are not capped at 99."""
    hours, remainder = divmod(duration_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds = remainder // 1000
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


async def run_sync_in_executor(
    executor: Executor | None, func: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """
    Execute a synchronous function in a thread executor without blocking the loop.

    Args:
        executor: Executor to run on, or None for the loop's default executor.
        func: The synchronous function to execute
        *args: Positional arguments for the function
        **kwargs: Keyword arguments for the function

    Returns:
        The result of the function call
    """
    loop = asyncio.get_running_loop()
    if kwargs:
        return await loop.run_in_executor(executor, lambda: func(*args, **kwargs))
    return await loop.run_in_executor(executor, func, *args)
