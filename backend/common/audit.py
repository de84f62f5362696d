"""
Best-effort audit event recording.

Audit persistence belongs to an external collaborator. This module defines the
interface the services call (``AuditSink``), a default sink that writes one
structured loguru line per event, and ``AuditRecorder``, which dispatches
events without ever blocking or failing the operation that produced them.

Example:
    ```python
    from common.audit import AuditRecorder, LoggingAuditSink

    recorder = AuditRecorder(LoggingAuditSink())
    recorder.record_nowait(
        tenant_id="tenant-1",
        actor_id="device-uuid",
        actor_type="device",
        action="session.ingest",
        resource_type="device_session",
        resource_id="session-uuid",
        details={"duration_ms": 5400000},
    )
    ```
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from loguru import logger


class AuditSink(Protocol):
    """Destination for audit events."""

    async def record(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None: ...


class LoggingAuditSink:
    """Audit sink writing each event as a structured log line."""

    async def record(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None:
        logger.bind(
            audit=True,
            tenant_id=tenant_id,
            actor_id=actor_id,
            actor_type=actor_type,
            resource_type=resource_type,
            resource_id=resource_id,
        ).info(f"AUDIT {action} {resource_type}/{resource_id} by {actor_type}:{actor_id} {details}")


class AuditRecorder:
    """
    Fire-and-forget dispatcher in front of an AuditSink.

    ``record_nowait`` schedules the sink call as a detached task on the running
    loop and returns immediately. Sink failures are logged as warnings and never
    propagate. Pending tasks are tracked so shutdown and tests can ``drain()``.
    """

    def __init__(self, sink: AuditSink | None = None) -> None:
        self.sink: AuditSink = sink or LoggingAuditSink()
        self._pending: set[asyncio.Task[None]] = set()

    def record_nowait(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Schedule an audit event. Never raises."""
        try:
            task = asyncio.get_running_loop().create_task(
                self._record(
                    tenant_id,
                    actor_id,
                    actor_type,
                    action,
                    resource_type,
                    resource_id,
                    details or {},
                )
            )
        except RuntimeError as e:
            logger.warning(f"Audit event {action} dropped, no running event loop: {e}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(
        self,
        tenant_id: str,
        actor_id: str,
        actor_type: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any],
    ) -> None:
        try:
            await self.sink.record(
                tenant_id=tenant_id,
                actor_id=actor_id,
                actor_type=actor_type,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details,
            )
        except Exception as e:
            logger.warning(f"Audit sink failed for {action} on {resource_type}/{resource_id}: {e}")

    async def drain(self) -> None:
        """Wait for every scheduled audit event to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
