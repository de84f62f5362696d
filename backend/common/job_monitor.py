"""
Periodic background monitor for job housekeeping.

This module provides a lightweight background task that runs a housekeeping
``sweep`` coroutine on a fixed interval inside the FastAPI process. The session
service uses it to purge export artifacts whose ``expires_at`` has passed.

Features:
    - Periodic polling every N seconds (configurable, default 5 minutes)
    - Optional initial delay so the service can finish starting
    - Sweep failures are logged and never stop the loop
    - Clean cancellation on shutdown

Usage:
    ```python
    from common.job_monitor import JobMonitor

    monitor = JobMonitor(
        name="export-expiry",
        sweep=export_service.purge_expired_exports,
        interval_seconds=300,
    )

    # Start monitoring (typically in FastAPI lifespan)
    await monitor.start()

    # Stop monitoring (on shutdown)
    await monitor.stop()
    ```
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger


class JobMonitor:
    """
    Background monitor running a housekeeping sweep periodically.

    Attributes:
        name: Label used in log lines.
        sweep: Coroutine function invoked once per interval. Its return value,
            if not None, is logged at debug level.
        interval_seconds: Polling interval in seconds (default: 300 = 5 minutes).
        initial_delay_seconds: Wait before the first sweep (default: 0).
    """

    def __init__(
        self,
        name: str,
        sweep: Callable[[], Awaitable[Any]],
        interval_seconds: float = 300,
        initial_delay_seconds: float = 0,
    ) -> None:
        self.name = name
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background monitoring task."""
        if self._running:
            logger.warning(f"Job monitor '{self.name}' is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Job monitor '{self.name}' started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background monitoring task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Job monitor '{self.name}' stopped")

    async def run_once(self) -> Any:
        """Run a single sweep, logging instead of raising on failure."""
        try:
            result = await self.sweep()
        except Exception as e:
            logger.opt(exception=e).error(f"Job monitor '{self.name}' error: {e}")
            return None
        if result is not None:
            logger.debug(f"Job monitor '{self.name}' sweep result: {result}")
        return result

    async def _run_loop(self) -> None:
        """Main monitoring loop - runs until stopped."""
        if self.initial_delay_seconds:
            await asyncio.sleep(self.initial_delay_seconds)

        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
