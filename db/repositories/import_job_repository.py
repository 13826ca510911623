"""
Repository for import job summaries and their persisted record errors.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Select, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.domain.canonical_record import RecordErrorEntry
from db.models.import_job import ImportJob, ImportJobStatus
from db.models.import_record_error import ImportRecordError


class JobStore(Protocol):
    def apply_chunk(
        self,
        *,
        job_id: str,
        entity_type: str,
        imported_by: str,
        chunk_index: int,
        total_chunks: int,
        total: int,
        processed: int,
        failed: int,
        error_count: int,
        error_sample: Sequence[dict[str, Any]],
        sample_limit: int,
        started_at: datetime,
    ) -> Any: ...

    def record_errors(self, *, job_id: str, entries: Sequence[RecordErrorEntry]) -> int: ...


def resolve_terminal_status(*, processed: int, failed: int) -> str:
    if processed == 0 and failed > 0:
        return ImportJobStatus.FAILED
    if failed > 0:
        return ImportJobStatus.COMPLETED_WITH_ERRORS
    return ImportJobStatus.COMPLETED


class ImportJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_job(self, job_id: str) -> ImportJob | None:
        return self._session.get(ImportJob, job_id)

    def get_for_update(self, job_id: str) -> ImportJob | None:
        stmt = select(ImportJob).where(ImportJob.id == job_id).with_for_update()
        return self._session.scalars(stmt).first()

    def ensure_job(
        self,
        *,
        job_id: str,
        entity_type: str,
        imported_by: str,
        total_chunks: int,
        started_at: datetime,
    ) -> ImportJob:
        """
        Create the job row on first sight and return it locked for update.
        """

        stmt = (
            insert(ImportJob)
            .values(
                id=job_id,
                entity_type=entity_type,
                imported_by=imported_by,
                status=ImportJobStatus.PROCESSING,
                total_chunks=max(1, total_chunks),
                started_at=started_at,
                error_details=[],
                received_chunks=[],
            )
            .on_conflict_do_nothing(index_elements=[ImportJob.id])
        )
        self._session.execute(stmt)
        job = self.get_for_update(job_id)
        if job is None:
            raise RuntimeError(f"Import job {job_id} vanished after insert.")
        return job

    def apply_chunk(
        self,
        *,
        job_id: str,
        entity_type: str,
        imported_by: str,
        chunk_index: int,
        total_chunks: int,
        total: int,
        processed: int,
        failed: int,
        error_count: int,
        error_sample: Sequence[dict[str, Any]],
        sample_limit: int,
        started_at: datetime,
    ) -> ImportJob:
        """
        Fold one chunk's counters into the job summary. Counters only grow.
        """

        job = self.ensure_job(
            job_id=job_id,
            entity_type=entity_type,
            imported_by=imported_by,
            total_chunks=total_chunks,
            started_at=started_at,
        )
        job.total_records += total
        job.processed_records += processed
        job.failed_records += failed
        job.error_count += error_count
        job.total_chunks = max(job.total_chunks, total_chunks)
        received = set(job.received_chunks or [])
        received.add(chunk_index)
        job.received_chunks = sorted(received)
        job.chunks_received = len(received)
        job.last_chunk_index = chunk_index

        existing = list(job.error_details or [])
        room = max(0, sample_limit - len(existing))
        if room:
            # Reassign so the JSONB column is flagged dirty.
            job.error_details = existing + list(error_sample[:room])

        now = datetime.now(timezone.utc)
        # A resent chunk refreshes the outcome; a cancelled job waits for reopen().
        if job.status != ImportJobStatus.CANCELLED and job.chunks_received >= job.total_chunks:
            job.status = resolve_terminal_status(
                processed=job.processed_records,
                failed=job.failed_records,
            )
            job.completed_at = now
            job.processing_time_ms = int((now - _as_aware(job.started_at)).total_seconds() * 1000)

        job.message = (
            f"Processed {job.processed_records}/{job.total_records} records "
            f"({job.chunks_received}/{job.total_chunks} chunks received)"
        )
        return job

    def record_errors(self, *, job_id: str, entries: Sequence[RecordErrorEntry]) -> int:
        if not entries:
            return 0
        self._session.add_all(
            [
                ImportRecordError(
                    job_id=job_id,
                    chunk_index=entry.chunk_index,
                    sub_batch=entry.sub_batch,
                    row_number=entry.row_number,
                    error_type=entry.error_type,
                    message=entry.message,
                    raw_payload=entry.raw,
                )
                for entry in entries
            ]
        )
        self._session.flush()
        return len(entries)

    def list_jobs(
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        entity_type: str | None = None,
    ) -> list[ImportJob]:
        stmt: Select[tuple[ImportJob]] = select(ImportJob)
        if entity_type:
            stmt = stmt.where(ImportJob.entity_type == entity_type)
        stmt = stmt.order_by(ImportJob.created_at.desc()).offset(max(0, offset)).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def list_errors(
        self,
        *,
        job_id: str,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ImportRecordError], int]:
        total = self._session.scalar(
            select(func.count()).select_from(ImportRecordError).where(ImportRecordError.job_id == job_id)
        )
        stmt = (
            select(ImportRecordError)
            .where(ImportRecordError.job_id == job_id)
            .order_by(ImportRecordError.chunk_index.asc(), ImportRecordError.row_number.asc(), ImportRecordError.id.asc())
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all()), int(total or 0)

    def mark_cancelled(self, *, job_id: str) -> ImportJob | None:
        job = self.get_for_update(job_id)
        if job is None:
            return None
        if job.status in ImportJobStatus.TERMINAL:
            return job
        now = datetime.now(timezone.utc)
        job.status = ImportJobStatus.CANCELLED
        job.completed_at = now
        job.processing_time_ms = int((now - _as_aware(job.started_at)).total_seconds() * 1000)
        job.message = (
            f"Cancelled after {job.chunks_received}/{job.total_chunks} chunks; "
            f"{job.processed_records} records imported"
        )
        return job

    def reopen(self, *, job_id: str) -> ImportJob | None:
        """
        Put a cancelled job back to processing so a resumed run can finish it.

        Jobs in any other state are returned untouched.
        """

        job = self.get_for_update(job_id)
        if job is None or job.status != ImportJobStatus.CANCELLED:
            return job
        job.message = f"Resumed after {job.chunks_received}/{job.total_chunks} chunks received"
        if job.chunks_received >= job.total_chunks:
            job.status = resolve_terminal_status(
                processed=job.processed_records,
                failed=job.failed_records,
            )
            return job
        job.status = ImportJobStatus.PROCESSING
        job.completed_at = None
        job.processing_time_ms = None
        return job


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
