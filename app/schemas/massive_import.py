"""
Schemas for massive-import, job status, and entity lookup endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class MassiveImportRequest(BaseModel):
    """
    One chunk of a massive import. ``entity_type`` and ``records`` are
    deliberately loose so malformed values reach the service and map to 400.
    """

    entity_type: Any = Field(default=None, validation_alias=AliasChoices("entity_type", "entityType"))
    records: Any = None
    user_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "userId", "imported_by", "importedBy"),
    )
    job_id: str | None = Field(default=None, validation_alias=AliasChoices("job_id", "jobId"))
    chunk_index: int = Field(default=1, validation_alias=AliasChoices("chunk_index", "chunkIndex"))
    total_chunks: int = Field(default=1, validation_alias=AliasChoices("total_chunks", "totalChunks"))
    row_offset: int = Field(default=0, validation_alias=AliasChoices("row_offset", "rowOffset"))


class RecordErrorResponse(BaseModel):
    row_number: int
    error_type: str
    message: str
    chunk_index: int
    sub_batch: int | None = None
    raw: dict[str, Any] | None = None


class MassiveImportResponse(BaseModel):
    job_id: str
    status: str
    processed: int
    total: int
    failed: int
    error_count: int
    errors: list[RecordErrorResponse] = Field(default_factory=list)
    chunk: str
    message: str
    timestamp: datetime


class ImportJobStatusResponse(BaseModel):
    job_id: str
    entity_type: str
    status: str
    imported_by: str
    total_records: int
    processed_records: int
    failed_records: int
    error_count: int
    total_chunks: int
    chunks_received: int
    last_chunk_index: int | None = None
    error_details: list[dict[str, Any]] = Field(default_factory=list)
    message: str | None = None
    processing_time_ms: int | None = None
    started_at: datetime
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ImportHistoryResponse(BaseModel):
    jobs: list[ImportJobStatusResponse] = Field(default_factory=list)
    limit: int
    offset: int


class ImportErrorListResponse(BaseModel):
    job_id: str
    total: int
    limit: int
    offset: int
    errors: list[RecordErrorResponse] = Field(default_factory=list)


class EntityLookupResponse(BaseModel):
    entities: dict[str, dict[str, Any]] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    database: str
    ready: bool
