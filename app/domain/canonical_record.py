"""
app/domain/canonical_record.py

Domain models shared by the normalizer and the ingestion service.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

RawRecord = Mapping[str, Any]

PROVENANCE_FIELDS: tuple[str, ...] = (
    "imported_at",
    "imported_by",
    "import_job_id",
    "chunk_info",
)


class FieldSeverity:
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class FieldError:
    """
    One field-level normalization problem, attributed to a 1-indexed source row.
    """

    row_number: int
    column: str | None
    message: str
    severity: str = FieldSeverity.ERROR
    value: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == FieldSeverity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_number": self.row_number,
            "column": self.column,
            "message": self.message,
            "severity": self.severity,
            "value": self.value,
        }


@dataclass(frozen=True)
class Provenance:
    """
    Who imported a record, when, and under which job.
    """

    import_job_id: str
    imported_by: str
    imported_at: datetime
    chunk_info: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "import_job_id": self.import_job_id,
            "imported_by": self.imported_by,
            "imported_at": self.imported_at.isoformat(),
        }
        if self.chunk_info is not None:
            payload["chunk_info"] = self.chunk_info
        return payload


@dataclass(frozen=True)
class CanonicalRecord:
    """
    A normalized record. ``fields`` and ``extras`` are read-only views.
    """

    entity_type: str
    row_number: int
    fields: Mapping[str, Any]
    extras: Mapping[str, Any] = field(default_factory=dict)
    provenance: Provenance | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "extras", MappingProxyType(dict(self.extras)))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def with_provenance(self, provenance: Provenance) -> CanonicalRecord:
        return replace(self, provenance=provenance)

    def content(self) -> dict[str, Any]:
        """
        Canonical fields plus preserved extras, without provenance.
        """

        merged = dict(self.extras)
        merged.update(self.fields)
        return merged

    def to_payload(self) -> dict[str, Any]:
        payload = self.content()
        if self.provenance is not None:
            payload.update(self.provenance.to_dict())
        return payload


@dataclass(frozen=True)
class RecordRejection:
    """
    One record the store refused during a partial write.
    """

    row_number: int
    reason: str


@dataclass(frozen=True)
class InsertOutcome:
    """
    Rows credited by a fully successful sub-batch write.
    """

    inserted_rows: tuple[int, ...]

    @property
    def inserted_count(self) -> int:
        return len(self.inserted_rows)


class RecordErrorType:
    NORMALIZATION = "normalization"
    PARTIAL_WRITE = "partial_write"
    TOTAL_WRITE = "total_write"


@dataclass(frozen=True)
class RecordErrorEntry:
    """
    One failed record inside a chunk, kept for the job's error log.
    """

    row_number: int
    error_type: str
    message: str
    chunk_index: int
    sub_batch: int | None = None
    raw: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "row_number": self.row_number,
            "error_type": self.error_type,
            "message": self.message,
            "chunk_index": self.chunk_index,
            "sub_batch": self.sub_batch,
        }
        if self.raw is not None:
            payload["raw"] = self.raw
        return payload


class ChunkStatus:
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


@dataclass(frozen=True)
class JobChunkResult:
    """
    Outcome of ingesting one chunk.
    """

    job_id: str
    entity_type: str
    status: str
    processed: int
    total: int
    failed: int
    errors: list[RecordErrorEntry] = field(default_factory=list)
    error_count: int = 0
    chunk_index: int = 1
    total_chunks: int = 1
    message: str = ""
    completed_at: datetime | None = None

    @property
    def chunk_label(self) -> str:
        return f"{self.chunk_index}/{self.total_chunks}"
