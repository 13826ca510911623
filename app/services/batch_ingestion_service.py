"""
app/services/batch_ingestion_service.py

Server side of a massive import: accepts one chunk of raw records,
re-normalizes them, stamps provenance, writes them in independent
sub-batches, and folds the outcome into the job summary.

Failure isolation:
  - A record that fails normalization is excluded from the write and logged.
  - A sub-batch rejected as a whole fails only its own records.
  - A partially rejected sub-batch keeps its inserted rows.
Only request validation and an unreachable store abort the call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_ingestion_settings
from app.domain.canonical_record import (
    CanonicalRecord,
    ChunkStatus,
    FieldError,
    JobChunkResult,
    Provenance,
    RecordErrorEntry,
    RecordErrorType,
)
from app.errors import (
    FieldNormalizationError,
    PartialWriteError,
    RequestValidationError,
    StoreUnavailableError,
    TotalWriteError,
)
from app.repositories.imported_record_repository import ImportedRecordRepository, RecordStore
from app.services.field_normalizer import FieldNormalizer
from db.repositories.import_job_repository import ImportJobRepository, JobStore

logger = logging.getLogger(__name__)


class BatchIngestionService:
    """
    Ingests one chunk of an import job.
    """

    def __init__(
        self,
        *,
        normalizer: FieldNormalizer | None = None,
        chunk_sub_batch_size: int = 25,
        standalone_sub_batch_size: int = 50,
        response_error_sample_size: int = 10,
        job_error_sample_size: int = 10,
        default_imported_by: str = "import_worker",
        log_record_errors: bool = True,
        record_store_factory: Callable[[Session], RecordStore] = ImportedRecordRepository,
        job_store_factory: Callable[[Session], JobStore] = ImportJobRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._normalizer = normalizer or FieldNormalizer()
        self._chunk_sub_batch_size = max(1, chunk_sub_batch_size)
        self._standalone_sub_batch_size = max(1, standalone_sub_batch_size)
        self._response_error_sample_size = max(1, response_error_sample_size)
        self._job_error_sample_size = max(1, job_error_sample_size)
        self._default_imported_by = default_imported_by
        self._log_record_errors = log_record_errors
        self._record_store_factory = record_store_factory
        self._job_store_factory = job_store_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ingest(
        self,
        *,
        db: Session,
        entity_type: Any,
        records: Any,
        job_id: str,
        imported_by: str | None = None,
        chunk_index: int = 1,
        total_chunks: int = 1,
        row_offset: int = 0,
    ) -> JobChunkResult:
        """
        Ingest one chunk and return its outcome.

        Args:
            db:           Active SQLAlchemy session; committed per sub-batch.
            entity_type:  Entity type name; must be a non-blank string.
            records:      List of raw records (column -> value).
            job_id:       Job the chunk belongs to; created on first sight.
            imported_by:  Provenance actor; falls back to the configured default.
            chunk_index:  1-based index of this chunk.
            total_chunks: Number of chunks in the job; 1 for a standalone request.
            row_offset:   0-based position of the chunk's first record in the dataset.

        Raises:
            RequestValidationError: malformed request; nothing was processed.
            StoreUnavailableError:  the record store cannot be reached.
        """

        entity_type = self._validate_request(
            entity_type=entity_type,
            records=records,
            job_id=job_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            row_offset=row_offset,
        )
        started_at = self._clock()
        actor = (imported_by or "").strip() or self._default_imported_by
        is_chunked = total_chunks > 1
        chunk_label = f"{chunk_index}/{total_chunks}"
        sub_batch_size = self._chunk_sub_batch_size if is_chunked else self._standalone_sub_batch_size

        record_store = self._record_store_factory(db)
        record_store.ping()

        logger.info(
            "Massive import chunk started job_id=%s entity_type=%s chunk=%s records=%s sub_batch_size=%s",
            job_id,
            entity_type,
            chunk_label,
            len(records),
            sub_batch_size,
        )

        provenance = Provenance(
            import_job_id=job_id,
            imported_by=actor,
            imported_at=started_at,
            chunk_info=chunk_label if is_chunked else None,
        )
        entries: list[RecordErrorEntry] = []
        stamped: list[CanonicalRecord] = []

        for index, raw_record in enumerate(records):
            row_number = row_offset + index + 1
            if not isinstance(raw_record, Mapping):
                self._record_error(
                    entries,
                    RecordErrorEntry(
                        row_number=row_number,
                        error_type=RecordErrorType.NORMALIZATION,
                        message="Record is not an object.",
                        chunk_index=chunk_index,
                        raw={"value": str(raw_record)},
                    ),
                )
                continue

            try:
                record, _ = self._normalizer.normalize_valid(
                    raw_record,
                    entity_type,
                    row_number=row_number,
                )
            except FieldNormalizationError as exc:
                self._record_error(
                    entries,
                    RecordErrorEntry(
                        row_number=row_number,
                        error_type=RecordErrorType.NORMALIZATION,
                        message=_combine_messages(exc.errors),
                        chunk_index=chunk_index,
                        raw=dict(raw_record),
                    ),
                )
                continue
            stamped.append(record.with_provenance(provenance))

        processed = 0
        for sub_batch, start in enumerate(range(0, len(stamped), sub_batch_size), start=1):
            processed += self._write_sub_batch(
                db=db,
                store=record_store,
                batch=stamped[start : start + sub_batch_size],
                sub_batch=sub_batch,
                chunk_index=chunk_index,
                entries=entries,
            )

        entries.sort(key=lambda entry: entry.row_number)
        failed = len(entries)
        total = len(records)
        completed_at = self._clock()

        self._update_job(
            db=db,
            job_id=job_id,
            entity_type=entity_type,
            imported_by=actor,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            total=total,
            processed=processed,
            entries=entries,
            started_at=started_at,
        )

        status = ChunkStatus.COMPLETED if failed == 0 else ChunkStatus.COMPLETED_WITH_ERRORS
        message = f"Processed {processed}/{total} records"
        if is_chunked:
            message += f" (chunk {chunk_label})"
        if failed:
            message += f"; {failed} failed"

        logger.info(
            "Massive import chunk finished job_id=%s chunk=%s processed=%s failed=%s status=%s",
            job_id,
            chunk_label,
            processed,
            failed,
            status,
        )
        return JobChunkResult(
            job_id=job_id,
            entity_type=entity_type,
            status=status,
            processed=processed,
            total=total,
            failed=failed,
            errors=entries[: self._response_error_sample_size],
            error_count=failed,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            message=message,
            completed_at=completed_at,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _validate_request(
        self,
        *,
        entity_type: Any,
        records: Any,
        job_id: str,
        chunk_index: int,
        total_chunks: int,
        row_offset: int,
    ) -> str:
        if not isinstance(entity_type, str) or not entity_type.strip():
            raise RequestValidationError("entity_type is required.")
        if not isinstance(records, list):
            raise RequestValidationError("records must be a list.")
        if not job_id or not str(job_id).strip():
            raise RequestValidationError("job_id is required.")
        if total_chunks < 1 or chunk_index < 1 or chunk_index > total_chunks:
            raise RequestValidationError(
                f"chunk_index must be between 1 and total_chunks (got {chunk_index}/{total_chunks})."
            )
        if row_offset < 0:
            raise RequestValidationError("row_offset must be zero or positive.")
        return entity_type.strip()

    def _write_sub_batch(
        self,
        *,
        db: Session,
        store: RecordStore,
        batch: Sequence[CanonicalRecord],
        sub_batch: int,
        chunk_index: int,
        entries: list[RecordErrorEntry],
    ) -> int:
        if not batch:
            return 0

        try:
            try:
                outcome = store.insert_batch(batch)
            except PartialWriteError as exc:
                db.commit()
                logger.warning(
                    "Sub-batch partially written chunk=%s sub_batch=%s inserted=%s rejected=%s",
                    chunk_index,
                    sub_batch,
                    exc.inserted_count,
                    len(exc.rejections),
                )
                for rejection in exc.rejections:
                    self._record_error(
                        entries,
                        RecordErrorEntry(
                            row_number=rejection.row_number,
                            error_type=RecordErrorType.PARTIAL_WRITE,
                            message=rejection.reason,
                            chunk_index=chunk_index,
                            sub_batch=sub_batch,
                        ),
                    )
                return exc.inserted_count
            db.commit()
            return outcome.inserted_count
        except (TotalWriteError, SQLAlchemyError) as exc:
            db.rollback()
            logger.error(
                "Sub-batch write failed chunk=%s sub_batch=%s records=%s error=%s",
                chunk_index,
                sub_batch,
                len(batch),
                exc,
            )
            for record in batch:
                self._record_error(
                    entries,
                    RecordErrorEntry(
                        row_number=record.row_number,
                        error_type=RecordErrorType.TOTAL_WRITE,
                        message=f"Batch insert failed: {exc}",
                        chunk_index=chunk_index,
                        sub_batch=sub_batch,
                    ),
                )
            return 0

    def _update_job(
        self,
        *,
        db: Session,
        job_id: str,
        entity_type: str,
        imported_by: str,
        chunk_index: int,
        total_chunks: int,
        total: int,
        processed: int,
        entries: Sequence[RecordErrorEntry],
        started_at: datetime,
    ) -> None:
        job_store = self._job_store_factory(db)
        try:
            job_store.apply_chunk(
                job_id=job_id,
                entity_type=entity_type,
                imported_by=imported_by,
                chunk_index=chunk_index,
                total_chunks=total_chunks,
                total=total,
                processed=processed,
                failed=len(entries),
                error_count=len(entries),
                error_sample=[entry.to_dict() for entry in entries[: self._job_error_sample_size]],
                sample_limit=self._job_error_sample_size,
                started_at=started_at,
            )
            job_store.record_errors(job_id=job_id, entries=entries)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Import job summary update failed job_id=%s chunk=%s", job_id, chunk_index)
            raise StoreUnavailableError("Import job summary could not be persisted.") from exc

    def _record_error(self, entries: list[RecordErrorEntry], entry: RecordErrorEntry) -> None:
        if self._log_record_errors:
            logger.warning(
                "Import record failed row=%s type=%s chunk=%s sub_batch=%s message=%s raw=%r",
                entry.row_number,
                entry.error_type,
                entry.chunk_index,
                entry.sub_batch,
                entry.message,
                entry.raw,
            )
        entries.append(entry)


def _combine_messages(errors: Sequence[FieldError]) -> str:
    return "; ".join(error.message for error in errors)


@lru_cache(maxsize=1)
def get_batch_ingestion_service() -> BatchIngestionService:
    """
    Build and cache the ingestion service with env-driven settings.
    """
    settings = get_ingestion_settings()
    return BatchIngestionService(
        chunk_sub_batch_size=settings.chunk_sub_batch_size,
        standalone_sub_batch_size=settings.standalone_sub_batch_size,
        response_error_sample_size=settings.response_error_sample_size,
        job_error_sample_size=settings.job_error_sample_size,
        default_imported_by=settings.default_imported_by,
        log_record_errors=settings.log_record_errors,
    )
