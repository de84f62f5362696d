"""
Export job status values and the transitions allowed between them.

An export job moves through a small, monotonic state machine:

    pending -> processing -> completed
                          -> failed

``completed`` and ``failed`` are terminal. Repositories consult
``ALLOWED_TRANSITIONS`` before issuing the conditional UPDATE that moves a job
forward, so a job never revisits an earlier state.
"""

from enum import Enum


class ExportStatus(str, Enum):
    """Lifecycle status of an export job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExportFormat(str, Enum):
    """File formats an export can be generated in."""

    CSV = "csv"
    XLSX = "xlsx"
    JSON = "json"


ALLOWED_TRANSITIONS: dict[ExportStatus, frozenset[ExportStatus]] = {
    ExportStatus.PENDING: frozenset({ExportStatus.PROCESSING}),
    ExportStatus.PROCESSING: frozenset({ExportStatus.COMPLETED, ExportStatus.FAILED}),
    ExportStatus.COMPLETED: frozenset(),
    ExportStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({ExportStatus.COMPLETED, ExportStatus.FAILED})


def can_transition(current: ExportStatus | str, target: ExportStatus | str) -> bool:
    """Return True when ``current -> target`` is an allowed job transition."""
    return ExportStatus(target) in ALLOWED_TRANSITIONS[ExportStatus(current)]
