"""
Common ORM models for the backend services.

Models are organized into three groups:

1. Session Models: Immutable machine working sessions
   - DeviceSession: One stored session, unique per (device_id, start_time, stop_time)

2. Export Models: Asynchronous export job tracking
   - ExportJob: Job row driving the export state machine
   - ExportStatus / ExportFormat: Allowed status and format values

3. Registry Models: Read-only device/factory registry tables
   - Device: Registered device, bound to a tenant and factory
   - Factory: Production site owning devices

All models inherit from common.database.Base.

Usage:
    ```python
    from common.models import DeviceSession, ExportJob

    stmt = select(DeviceSession).where(DeviceSession.tenant_id == tenant_id)
    ```
"""

# Import all models to make them available
from .exports import ExportJob
from .job_status import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    ExportFormat,
    ExportStatus,
    can_transition,
)
from .registry import Device, Factory
from .sessions import DeviceSession

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    # Registry models (SQLAlchemy ORM)
    "Device",
    # Session models (SQLAlchemy ORM)
    "DeviceSession",
    "ExportFormat",
    # Export models (SQLAlchemy ORM)
    "ExportJob",
    "ExportStatus",
    "Factory",
    "can_transition",
]
