"""
API models for the session service.
"""

from .analytics import (
    DateRange,
    DeviceSummaryResponse,
    DurationMetric,
    DurationSeriesResponse,
    SummaryMetrics,
)
from .exports import (
    CreateExportRequest,
    CreateExportResponse,
    ExportJobListResponse,
    ExportJobResponse,
    ExportJobSummary,
)
from .sessions import (
    DeviceSessionListResponse,
    DeviceSessionResponse,
    Pagination,
    SessionIngestRequest,
    SessionIngestResponse,
)

__all__ = [
    "CreateExportRequest",
    "CreateExportResponse",
    "DateRange",
    "DeviceSessionListResponse",
    "DeviceSessionResponse",
    "DeviceSummaryResponse",
    "DurationMetric",
    "DurationSeriesResponse",
    "ExportJobListResponse",
    "ExportJobResponse",
    "ExportJobSummary",
    "Pagination",
    "SessionIngestRequest",
    "SessionIngestResponse",
    "SummaryMetrics",
]
