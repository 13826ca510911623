"""
app/domain package marker.
"""

from app.domain.canonical_record import (
    CanonicalRecord,
    FieldError,
    FieldSeverity,
    JobChunkResult,
    Provenance,
    RecordErrorEntry,
)
from app.domain.entity_profiles import EntityProfile, FieldKind, FieldSpec, get_profile

__all__ = [
    "CanonicalRecord",
    "EntityProfile",
    "FieldError",
    "FieldKind",
    "FieldSeverity",
    "FieldSpec",
    "JobChunkResult",
    "Provenance",
    "RecordErrorEntry",
    "get_profile",
]
