"""
Tests for the periodic job monitor and the audit recorder.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from loguru import logger

from common.audit import AuditRecorder
from common.job_monitor import JobMonitor


class TestJobMonitor:
    """Tests for the housekeeping loop."""

    @pytest.mark.asyncio
    async def test_run_once_returns_sweep_result(self):
        sweep = AsyncMock(return_value={"jobs_deleted": 2, "files_deleted": 2})
        monitor = JobMonitor("export-expiry", sweep)

        assert await monitor.run_once() == {"jobs_deleted": 2, "files_deleted": 2}

    @pytest.mark.asyncio
    async def test_run_once_swallows_sweep_errors(self):
        monitor = JobMonitor("export-expiry", AsyncMock(side_effect=RuntimeError("db down")))

        assert await monitor.run_once() is None

    @pytest.mark.asyncio
    async def test_error_text_with_braces_is_logged(self):
        messages = []
        handler_id = logger.add(messages.append, format="{message}")
        monitor = JobMonitor("export-expiry", AsyncMock(side_effect=RuntimeError("bad params {'id': 1}")))

        try:
            assert await monitor.run_once() is None
        finally:
            logger.remove(handler_id)

        assert any("bad params {'id': 1}" in message for message in messages)
        assert any("RuntimeError" in message for message in messages)

    @pytest.mark.asyncio
    async def test_loop_survives_error_text_with_braces(self):
        sweep = AsyncMock(side_effect=[RuntimeError("bad params {'id': 1}"), None, None, None, None, None])
        monitor = JobMonitor("export-expiry", sweep, interval_seconds=0.01)

        await monitor.start()
        await asyncio.sleep(0.05)
        assert monitor._task is not None and not monitor._task.done()
        await monitor.stop()

        assert sweep.await_count >= 2

    @pytest.mark.asyncio
    async def test_loop_keeps_running_after_failure(self):
        sweep = AsyncMock(side_effect=[RuntimeError("db down"), None, None, None, None, None])
        monitor = JobMonitor("export-expiry", sweep, interval_seconds=0.01)

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert sweep.await_count >= 2
        assert monitor.running is False

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self):
        monitor = JobMonitor("export-expiry", AsyncMock(), interval_seconds=60)

        await monitor.start()
        task = monitor._task
        await monitor.start()

        assert monitor._task is task
        await monitor.stop()


class TestAuditRecorder:
    """Tests for best-effort audit dispatch."""

    @pytest.mark.asyncio
    async def test_event_reaches_sink(self):
        sink = AsyncMock()
        recorder = AuditRecorder(sink=sink)

        recorder.record_nowait("t1", "u1", "user", "export.complete", "export_job", "job-1", {"format": "csv"})
        await recorder.drain()

        sink.record.assert_awaited_once_with(
            tenant_id="t1",
            actor_id="u1",
            actor_type="user",
            action="export.complete",
            resource_type="export_job",
            resource_id="job-1",
            details={"format": "csv"},
        )

    @pytest.mark.asyncio
    async def test_sink_failure_is_contained(self):
        sink = AsyncMock()
        sink.record.side_effect = ConnectionError("audit store unreachable")
        recorder = AuditRecorder(sink=sink)

        recorder.record_nowait("t1", "d1", "device", "session.ingest", "device_session", "s-1")
        await recorder.drain()

        sink.record.assert_awaited_once()

    def test_without_event_loop_event_is_dropped(self):
        sink = AsyncMock()
        recorder = AuditRecorder(sink=sink)

        recorder.record_nowait("t1", "d1", "device", "session.ingest", "device_session", "s-1")

        sink.record.assert_not_called()
