"""
Massive-import ingestion and job tracking endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.dependencies import get_header_job_id, get_import_job_repository, resolve_job_id
from app.domain.canonical_record import JobChunkResult
from app.errors import RequestValidationError, StoreUnavailableError
from app.schemas.massive_import import (
    ImportErrorListResponse,
    ImportHistoryResponse,
    ImportJobStatusResponse,
    MassiveImportRequest,
    MassiveImportResponse,
    RecordErrorResponse,
)
from app.services.batch_ingestion_service import BatchIngestionService, get_batch_ingestion_service
from db.models.import_job import ImportJob
from db.repositories.import_job_repository import ImportJobRepository
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["massive-import"])


@router.post("/massive-import", response_model=MassiveImportResponse)
def massive_import(
    request: MassiveImportRequest,
    header_job_id: str | None = Depends(get_header_job_id),
    db: Session = Depends(get_db),
    service: BatchIngestionService = Depends(get_batch_ingestion_service),
) -> MassiveImportResponse | JSONResponse:
    job_id = resolve_job_id(header_job_id, request.job_id)
    try:
        result = service.ingest(
            db=db,
            entity_type=request.entity_type,
            records=request.records,
            job_id=job_id,
            imported_by=request.user_id,
            chunk_index=request.chunk_index,
            total_chunks=request.total_chunks,
            row_offset=request.row_offset,
        )
    except RequestValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        logger.error("Massive import store unavailable job_id=%s error=%s", job_id, exc)
        return _failure_response(job_id=job_id, error=str(exc))
    except SQLAlchemyError:
        logger.exception("Massive import failed job_id=%s", job_id)
        return _failure_response(job_id=job_id, error="Database error during import.")

    return _to_import_response(result)


@router.get("/job-status/{job_id}", response_model=ImportJobStatusResponse)
def get_job_status(
    job_id: str,
    repository: ImportJobRepository = Depends(get_import_job_repository),
) -> ImportJobStatusResponse:
    job = repository.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job not found: {job_id}",
        )
    return _to_status_response(job)


@router.get("/import-history", response_model=ImportHistoryResponse)
def get_import_history(
    entity_type: str | None = Query(default=None, description="Optional entity type filter"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    repository: ImportJobRepository = Depends(get_import_job_repository),
) -> ImportHistoryResponse:
    jobs = repository.list_jobs(limit=limit, offset=offset, entity_type=entity_type)
    return ImportHistoryResponse(
        jobs=[_to_status_response(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


@router.get("/import-jobs/{job_id}/errors", response_model=ImportErrorListResponse)
def get_import_errors(
    job_id: str,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    repository: ImportJobRepository = Depends(get_import_job_repository),
) -> ImportErrorListResponse:
    if repository.get_job(job_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job not found: {job_id}",
        )
    rows, total = repository.list_errors(job_id=job_id, limit=limit, offset=offset)
    return ImportErrorListResponse(
        job_id=job_id,
        total=total,
        limit=limit,
        offset=offset,
        errors=[
            RecordErrorResponse(
                row_number=row.row_number,
                error_type=row.error_type,
                message=row.message,
                chunk_index=row.chunk_index,
                sub_batch=row.sub_batch,
                raw=row.raw_payload,
            )
            for row in rows
        ],
    )


@router.post("/import-jobs/{job_id}/abort", response_model=ImportJobStatusResponse)
def abort_import_job(
    job_id: str,
    db: Session = Depends(get_db),
    repository: ImportJobRepository = Depends(get_import_job_repository),
) -> ImportJobStatusResponse:
    job = repository.mark_cancelled(job_id=job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job not found: {job_id}",
        )
    db.commit()
    logger.info("Import job abort requested job_id=%s status=%s", job_id, job.status)
    return _to_status_response(job)


@router.post("/import-jobs/{job_id}/resume", response_model=ImportJobStatusResponse)
def resume_import_job(
    job_id: str,
    db: Session = Depends(get_db),
    repository: ImportJobRepository = Depends(get_import_job_repository),
) -> ImportJobStatusResponse:
    job = repository.reopen(job_id=job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job not found: {job_id}",
        )
    db.commit()
    logger.info("Import job resume requested job_id=%s status=%s", job_id, job.status)
    return _to_status_response(job)


def _to_import_response(result: JobChunkResult) -> MassiveImportResponse:
    return MassiveImportResponse(
        job_id=result.job_id,
        status=result.status,
        processed=result.processed,
        total=result.total,
        failed=result.failed,
        error_count=result.error_count,
        errors=[RecordErrorResponse(**entry.to_dict()) for entry in result.errors],
        chunk=result.chunk_label,
        message=result.message,
        timestamp=result.completed_at or datetime.now(timezone.utc),
    )


def _to_status_response(job: ImportJob) -> ImportJobStatusResponse:
    return ImportJobStatusResponse(
        job_id=job.id,
        entity_type=job.entity_type,
        status=job.status,
        imported_by=job.imported_by,
        total_records=job.total_records,
        processed_records=job.processed_records,
        failed_records=job.failed_records,
        error_count=job.error_count,
        total_chunks=job.total_chunks,
        chunks_received=job.chunks_received,
        last_chunk_index=job.last_chunk_index,
        error_details=list(job.error_details or []),
        message=job.message,
        processing_time_ms=job.processing_time_ms,
        started_at=job.started_at,
        completed_at=job.completed_at,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def _failure_response(*, job_id: str, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": "failed",
            "job_id": job_id,
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
