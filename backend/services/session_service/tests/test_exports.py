"""
Tests for the export job pipeline.
"""

import csv
import json
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import BackgroundTasks
from openpyxl import load_workbook

from common.exceptions import InvalidStateTransition, LimitExceededError, NotFoundError, ValidationError
from common.models import ExportStatus
from conftest import DEVICE_ID, OTHER_USER_ID, TENANT_ID, USER_ID, utc
from services.session_service.services.export_writers import FIELD_NAMES


async def _create(export_service, export_format="csv", date_from="2024-01-01T00:00:00Z", date_to="2024-01-31T23:59:59Z"):
    background_tasks = BackgroundTasks()
    job = await export_service.create_export_job(
        tenant_id=TENANT_ID,
        user_id=USER_ID,
        device_id=DEVICE_ID,
        export_format=export_format,
        date_from=date_from,
        date_to=date_to,
        background_tasks=background_tasks,
    )
    return job, background_tasks


async def _run(export_service, export_format="csv"):
    job, _ = await _create(export_service, export_format)
    await export_service.process_export_job(job.id)
    return await export_service.get_export_job(TENANT_ID, USER_ID, job.id)


class TestCreateExportJob:
    """Tests for job admission."""

    @pytest.mark.asyncio
    async def test_job_is_pending_and_scheduled(self, export_service, add_session):
        await add_session(utc(2024, 1, 5, 8), 60_000)

        job, background_tasks = await _create(export_service)

        assert job.status == ExportStatus.PENDING.value
        assert job.format == "csv"
        assert len(background_tasks.tasks) == 1
        assert export_service.download_url(job) is None

    @pytest.mark.asyncio
    async def test_limit_is_enforced_before_creation(self, export_service, export_repository, add_session):
        for minute in range(6):
            await add_session(utc(2024, 1, 5, 8, minute), 1000)

        with pytest.raises(LimitExceededError, match="Export exceeds maximum record limit of 5"):
            await _create(export_service)

        jobs, total = await export_repository.list_user_jobs(TENANT_ID, USER_ID)
        assert total == 0

    @pytest.mark.asyncio
    async def test_unknown_device_is_not_found(self, export_service):
        with pytest.raises(NotFoundError, match="Device not found"):
            await export_service.create_export_job(
                TENANT_ID, USER_ID, "DEV-UNKNOWN", "csv",
                "2024-01-01T00:00:00Z", "2024-01-31T00:00:00Z", BackgroundTasks(),
            )

    @pytest.mark.asyncio
    async def test_reversed_range_is_rejected(self, export_service):
        with pytest.raises(ValidationError):
            await _create(export_service, date_from="2024-02-01T00:00:00Z", date_to="2024-01-01T00:00:00Z")

    @pytest.mark.asyncio
    async def test_invalid_date_is_rejected(self, export_service):
        with pytest.raises(ValidationError, match="Invalid date_from"):
            await _create(export_service, date_from="01/01/2024")


class TestProcessExportJob:
    """Tests for background generation."""

    @pytest.mark.asyncio
    async def test_csv_export_completes(self, export_service, add_session, clock, settings):
        await add_session(utc(2024, 1, 5, 8), 3_723_000)
        await add_session(utc(2024, 1, 6, 8), 60_000)
        await add_session(utc(2024, 1, 7, 8), 1000)

        job = await _run(export_service, "csv")

        assert job.status == ExportStatus.COMPLETED.value
        assert job.record_count == 3
        assert job.completed_at == clock.now
        assert job.expires_at == clock.now + timedelta(seconds=settings.EXPORT_TTL_SECONDS)
        assert job.file_size == Path(job.file_path).stat().st_size
        assert export_service.download_url(job) == f"/api/v1/exports/{job.id}/download"

        with open(job.file_path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert list(rows[0].keys()) == FIELD_NAMES
        assert [r["start_time"] for r in rows] == [
            "2024-01-05T08:00:00.000Z",
            "2024-01-06T08:00:00.000Z",
            "2024-01-07T08:00:00.000Z",
        ]
        assert rows[0]["duration_formatted"] == "01:02:03"
        assert rows[0]["device_name"] == "Press 1"
        assert rows[0]["factory_name"] == "Plant A"

    @pytest.mark.asyncio
    async def test_json_export_is_an_array(self, export_service, add_session):
        await add_session(utc(2024, 1, 5, 8), 1000)
        await add_session(utc(2024, 1, 6, 8), 2000)
        await add_session(utc(2024, 1, 7, 8), 3000)

        job = await _run(export_service, "json")

        records = json.loads(Path(job.file_path).read_text(encoding="utf-8"))
        assert [r["duration_ms"] for r in records] == [1000, 2000, 3000]
        assert Path(job.file_path).suffix == ".json"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("export_format", ["csv", "json", "xlsx"])
    async def test_export_spanning_several_batches_completes(self, export_service, add_session, settings, export_format):
        # 5 sessions with a batch size of 2 stream as 3 partitions
        for day in (9, 5, 7, 6, 8):
            await add_session(utc(2024, 1, day, 8), day * 1000)

        job = await _run(export_service, export_format)

        assert settings.EXPORT_BATCH_SIZE == 2
        assert job.status == ExportStatus.COMPLETED.value, job.error_message
        assert job.record_count == 5

        if export_format == "csv":
            with open(job.file_path, newline="", encoding="utf-8") as f:
                durations = [int(r["duration_ms"]) for r in csv.DictReader(f)]
        elif export_format == "json":
            durations = [r["duration_ms"] for r in json.loads(Path(job.file_path).read_text(encoding="utf-8"))]
        else:
            sheet = load_workbook(job.file_path)["Sessions"]
            durations = [sheet.cell(row=row, column=6).value for row in range(2, sheet.max_row + 1)]
        assert durations == [5000, 6000, 7000, 8000, 9000]

    @pytest.mark.asyncio
    async def test_xlsx_export_has_sessions_sheet(self, export_service, add_session):
        await add_session(utc(2024, 1, 5, 8), 1000)

        job = await _run(export_service, "xlsx")

        workbook = load_workbook(job.file_path, read_only=True)
        sheet = workbook["Sessions"]
        rows = list(sheet.iter_rows(values_only=True))
        workbook.close()
        assert rows[0][0] == "Device ID"
        assert rows[1][0] == DEVICE_ID
        assert len(rows) == 2

    @pytest.mark.asyncio
    async def test_empty_export_completes_with_zero_records(self, export_service):
        job = await _run(export_service, "json")

        assert job.status == ExportStatus.COMPLETED.value
        assert job.record_count == 0
        assert json.loads(Path(job.file_path).read_text(encoding="utf-8")) == []

    @pytest.mark.asyncio
    async def test_generation_failure_marks_job_failed(self, export_service, add_session, settings):
        await add_session(utc(2024, 1, 5, 8), 1000)

        with patch(
            "services.session_service.services.export_service.build_export_row",
            side_effect=RuntimeError("disk on fire"),
        ):
            job = await _run(export_service, "csv")

        assert job.status == ExportStatus.FAILED.value
        assert job.error_message == "RuntimeError: disk on fire"
        assert job.completed_at is not None
        assert job.file_path is None
        assert list(Path(settings.EXPORT_DIR).iterdir()) == []

    @pytest.mark.asyncio
    async def test_processing_twice_is_a_no_op(self, export_service, add_session, settings):
        await add_session(utc(2024, 1, 5, 8), 1000)
        job, _ = await _create(export_service)

        await export_service.process_export_job(job.id)
        await export_service.process_export_job(job.id)

        assert len(list(Path(settings.EXPORT_DIR).iterdir())) == 1

    @pytest.mark.asyncio
    async def test_terminal_job_is_skipped_without_transition(self, export_service, add_session):
        await add_session(utc(2024, 1, 5, 8), 1000)
        job = await _run(export_service)

        with patch.object(export_service.repository, "transition", new=AsyncMock()) as transition:
            await export_service.process_export_job(job.id)

        transition.assert_not_awaited()
        reloaded = await export_service.get_export_job(TENANT_ID, USER_ID, job.id)
        assert reloaded.status == ExportStatus.COMPLETED.value
        assert reloaded.file_path == job.file_path

    @pytest.mark.asyncio
    async def test_completion_is_audited(self, export_service, add_session, audit, audit_sink):
        await add_session(utc(2024, 1, 5, 8), 1000)

        job = await _run(export_service)
        await audit.drain()

        audit_sink.record.assert_awaited_once()
        kwargs = audit_sink.record.await_args.kwargs
        assert kwargs["action"] == "export.complete"
        assert kwargs["actor_id"] == USER_ID
        assert kwargs["resource_id"] == job.id

    @pytest.mark.asyncio
    async def test_missing_job_is_logged_not_raised(self, export_service):
        await export_service.process_export_job("3f0c9a51-54b2-4c1b-9a57-0a7c1b2d3e4f")


class TestSessionBatchStream:
    """Tests for the batched session stream that feeds the writers."""

    @pytest.mark.asyncio
    async def test_batches_are_bounded_and_ordered(self, session_repository, add_session):
        for minute in (4, 0, 3, 1, 2):
            await add_session(utc(2024, 1, 5, 8, minute), 1000 + minute)

        batches = [
            batch
            async for batch in session_repository.stream_session_batches(
                TENANT_ID, DEVICE_ID, utc(2024, 1, 1), utc(2024, 1, 31), batch_size=2
            )
        ]

        assert [len(batch) for batch in batches] == [2, 2, 1]
        flat = [row for batch in batches for row in batch]
        assert [row.duration_ms for row in flat] == [1000, 1001, 1002, 1003, 1004]
        assert all(row.device_id == DEVICE_ID for row in flat)
        assert flat[0].start_time.replace(tzinfo=None) == utc(2024, 1, 5, 8).replace(tzinfo=None)


class TestJobStateMachine:
    """Tests for guarded status transitions."""

    @pytest.mark.asyncio
    async def test_terminal_state_cannot_move(self, export_service, export_repository):
        job = await _run(export_service)

        moved = await export_repository.transition(
            job.id, ExportStatus.PROCESSING, ExportStatus.FAILED, error_message="late"
        )

        assert moved is False
        refreshed = await export_repository.get_job(job.id)
        assert refreshed.status == ExportStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_disallowed_transition_raises(self, export_service, export_repository):
        job, _ = await _create(export_service)

        with pytest.raises(InvalidStateTransition):
            await export_repository.transition(job.id, ExportStatus.PENDING, ExportStatus.COMPLETED)


class TestDownloadAndExpiry:
    """Tests for downloads, ownership and expiry."""

    @pytest.mark.asyncio
    async def test_download_path_until_expiry(self, export_service, add_session, clock, settings):
        await add_session(utc(2024, 1, 5, 8), 1000)
        job = await _run(export_service)

        path = await export_service.get_download_path(TENANT_ID, USER_ID, job.id)
        assert path == Path(job.file_path)

        clock.advance(seconds=settings.EXPORT_TTL_SECONDS)
        with pytest.raises(NotFoundError, match="Export file not found or expired"):
            await export_service.get_download_path(TENANT_ID, USER_ID, job.id)

    @pytest.mark.asyncio
    async def test_pending_job_cannot_be_downloaded(self, export_service):
        job, _ = await _create(export_service)

        with pytest.raises(NotFoundError):
            await export_service.get_download_path(TENANT_ID, USER_ID, job.id)

    @pytest.mark.asyncio
    async def test_other_user_cannot_see_job(self, export_service):
        job, _ = await _create(export_service)

        with pytest.raises(NotFoundError, match="Export job not found"):
            await export_service.get_export_job(TENANT_ID, OTHER_USER_ID, job.id)
        with pytest.raises(NotFoundError):
            await export_service.get_download_path(TENANT_ID, OTHER_USER_ID, job.id)

    @pytest.mark.asyncio
    async def test_malformed_job_id_is_not_found(self, export_service):
        with pytest.raises(NotFoundError):
            await export_service.get_export_job(TENANT_ID, USER_ID, "not-a-uuid")

    @pytest.mark.asyncio
    async def test_purge_removes_expired_files_and_rows(self, export_service, add_session, clock, settings):
        await add_session(utc(2024, 1, 5, 8), 1000)
        job = await _run(export_service)

        assert await export_service.purge_expired_exports() == {"jobs_deleted": 0, "files_deleted": 0}

        clock.advance(seconds=settings.EXPORT_TTL_SECONDS + 1)
        result = await export_service.purge_expired_exports()

        assert result == {"jobs_deleted": 1, "files_deleted": 1}
        assert not Path(job.file_path).exists()
        with pytest.raises(NotFoundError):
            await export_service.get_export_job(TENANT_ID, USER_ID, job.id)


class TestListExportJobs:
    @pytest.mark.asyncio
    async def test_lists_only_own_jobs(self, export_service):
        await _create(export_service)
        await _create(export_service, export_format="json")

        jobs, total = await export_service.list_export_jobs(TENANT_ID, USER_ID)
        other_jobs, other_total = await export_service.list_export_jobs(TENANT_ID, OTHER_USER_ID)

        assert total == 2
        assert {j.format for j in jobs} == {"csv", "json"}
        assert other_total == 0
        assert other_jobs == []
