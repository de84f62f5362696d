"""
Streaming file writers for session exports.

Each writer receives rows in batches and commits them to disk as they arrive,
so a writer never holds more than the current batch in memory:

    - CSV: ``csv.DictWriter`` with a header row
    - JSON: a JSON array written one object per line
    - XLSX: an ``openpyxl`` write-only workbook with a single "Sessions" sheet

Writers are synchronous; the export service calls them from a worker thread.

Example:
    ```python
    writer = create_writer(ExportFormat.CSV, Path("exports/export_DEV-1_x.csv"))
    writer.open()
    try:
        writer.write_rows(rows)
    except Exception:
        writer.abort()
        raise
    writer.close()
    ```
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import csv
import json
from pathlib import Path
from typing import IO, Any

from openpyxl import Workbook
from openpyxl.utils import get_column_letter
from sqlalchemy import Row

from common.models import DeviceSession, ExportFormat
from services.session_service.utils import format_duration, isoformat_utc

# (row key, spreadsheet header, spreadsheet column width)
EXPORT_COLUMNS: list[tuple[str, str, int]] = [
    ("device_id", "Device ID", 20),
    ("device_name", "Device Name", 25),
    ("factory_name", "Factory Name", 25),
    ("start_time", "Start Time", 25),
    ("stop_time", "Stop Time", 25),
    ("duration_ms", "Duration (ms)", 15),
    ("duration_formatted", "Duration", 12),
    ("ingested_at", "Ingested At", 25),
]

FIELD_NAMES = [key for key, _, _ in EXPORT_COLUMNS]

CONTENT_TYPES = {
    ".csv": "text/csv",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".json": "application/json",
}


def build_export_row(
    session: DeviceSession | Row[Any], device_name: str, factory_name: str
) -> dict[str, Any]:
    """Flatten one stored session (ORM instance or streamed column row) into the exported row shape."""
    return {
        "device_id": session.device_id,
        "device_name": device_name,
        "factory_name": factory_name,
        "start_time": isoformat_utc(session.start_time),
        "stop_time": isoformat_utc(session.stop_time),
        "duration_ms": session.duration_ms,
        "duration_formatted": format_duration(session.duration_ms),
        "ingested_at": isoformat_utc(session.ingested_at),
    }


def content_type_for(path: str | Path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


class ExportWriter(ABC):
    """Base class for incremental export writers."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.rows_written = 0

    @abstractmethod
    def open(self) -> None:
        """Create the file and write any preamble (header row, opening bracket)."""

    @abstractmethod
    def _write(self, rows: list[dict[str, Any]]) -> None: ...

    @abstractmethod
    def close(self) -> None:
        """Write any trailer and flush the file to disk."""

    @abstractmethod
    def abort(self) -> None:
        """Release file handles without finalising the file."""

    def write_rows(self, rows: list[dict[str, Any]]) -> None:
        self._write(rows)
        self.rows_written += len(rows)


class _TextExportWriter(ExportWriter):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self._handle: IO[str] | None = None

    def _open_handle(self) -> IO[str]:
        self._handle = self.path.open("w", encoding="utf-8", newline="")
        return self._handle

    def _require_handle(self) -> IO[str]:
        if self._handle is None:
            raise RuntimeError(f"Export writer for {self.path} is not open")
        return self._handle

    def abort(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class CsvExportWriter(_TextExportWriter):
    def open(self) -> None:
        self._writer = csv.DictWriter(self._open_handle(), fieldnames=FIELD_NAMES)
        self._writer.writeheader()

    def _write(self, rows: list[dict[str, Any]]) -> None:
        self._require_handle()
        self._writer.writerows(rows)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class JsonExportWriter(_TextExportWriter):
    def open(self) -> None:
        self._open_handle().write("[\n")
        self._first = True

    def _write(self, rows: list[dict[str, Any]]) -> None:
        handle = self._require_handle()
        for row in rows:
            if not self._first:
                handle.write(",\n")
            self._first = False
            handle.write("  " + json.dumps(row))

    def close(self) -> None:
        if self._handle is not None:
            self._handle.write("\n]")
            self._handle.close()
            self._handle = None


class XlsxExportWriter(ExportWriter):
    sheet_title = "Sessions"

    def open(self) -> None:
        # Write-only mode streams rows to a temporary file instead of keeping cells in memory
        self._workbook = Workbook(write_only=True)
        self._sheet = self._workbook.create_sheet(self.sheet_title)
        for index, (_, _, width) in enumerate(EXPORT_COLUMNS, start=1):
            self._sheet.column_dimensions[get_column_letter(index)].width = width
        self._sheet.append([header for _, header, _ in EXPORT_COLUMNS])

    def _write(self, rows: list[dict[str, Any]]) -> None:
        for row in rows:
            self._sheet.append([row[key] for key in FIELD_NAMES])

    def close(self) -> None:
        self._workbook.save(self.path)

    def abort(self) -> None:
        workbook = getattr(self, "_workbook", None)
        if workbook is not None:
            workbook.close()


WRITERS: dict[ExportFormat, type[ExportWriter]] = {
    ExportFormat.CSV: CsvExportWriter,
    ExportFormat.JSON: JsonExportWriter,
    ExportFormat.XLSX: XlsxExportWriter,
}


def create_writer(export_format: ExportFormat | str, path: Path) -> ExportWriter:
    return WRITERS[ExportFormat(export_format)](path)
