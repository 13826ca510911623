"""
app/errors.py

Exception taxonomy shared by the ingestion pipeline.

Only ``RequestValidationError`` and ``StoreUnavailableError`` ever abort a
call. Everything else is caught close to where it is raised and recorded
against the job, chunk, or record it belongs to.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.domain.canonical_record import FieldError, RecordRejection


class ImportPipelineError(Exception):
    """Base exception for ingestion pipeline failures."""


class RequestValidationError(ImportPipelineError, ValueError):
    """
    Raised when a caller's request is malformed (missing entity type, non-list records).
    """


class StoreUnavailableError(ImportPipelineError, RuntimeError):
    """
    Raised when the record store cannot be reached at all.
    """


class FieldNormalizationError(ImportPipelineError):
    """
    One record could not be mapped or coerced into canonical shape.
    """

    def __init__(self, *, row_number: int, errors: Sequence[FieldError]) -> None:
        self.row_number = row_number
        self.errors = tuple(errors)
        super().__init__(
            "; ".join(f"{error.column}: {error.message}" for error in self.errors)
            or f"Row {row_number} could not be normalized."
        )


class WriteError(ImportPipelineError):
    """Base exception for sub-batch write failures."""


class TotalWriteError(WriteError):
    """
    A whole sub-batch was rejected by the store; no record is credited.
    """


class PartialWriteError(WriteError):
    """
    Some records in a sub-batch were persisted and others were rejected.
    """

    def __init__(
        self,
        *,
        inserted_rows: Sequence[int],
        rejections: Sequence[RecordRejection],
        message: str | None = None,
    ) -> None:
        self.inserted_rows = tuple(inserted_rows)
        self.rejections = tuple(rejections)
        super().__init__(
            message
            or f"Partial insertion failure: {len(self.rejections)} records failed"
        )

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_rows)


class ResolutionTimeoutError(ImportPipelineError):
    """
    A batch of foreign ids could not be resolved after all retries.
    """

    def __init__(self, *, entity_type: str, ids: Sequence[str], attempts: int) -> None:
        self.entity_type = entity_type
        self.ids = tuple(ids)
        self.attempts = attempts
        super().__init__(
            f"Could not resolve {len(self.ids)} {entity_type} id(s) after {attempts} attempt(s)."
        )


class CacheNotReadyError(ImportPipelineError, RuntimeError):
    """
    Raised when the resolution cache is used before ``initialize()``.
    """


class EntityFetchError(ImportPipelineError):
    """
    Raised by entity fetchers when a lookup request fails.
    """


class ChunkTransportError(ImportPipelineError):
    """
    Raised when a chunk could not be delivered or the server rejected it.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChunkCancelledError(ImportPipelineError):
    """
    Raised when an in-flight chunk request is abandoned because of cancellation.
    """
