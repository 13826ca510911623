"""
app/schemas package marker.
"""

from app.schemas.massive_import import (
    EntityLookupResponse,
    HealthResponse,
    ImportErrorListResponse,
    ImportHistoryResponse,
    ImportJobStatusResponse,
    MassiveImportRequest,
    MassiveImportResponse,
    RecordErrorResponse,
)

__all__ = [
    "EntityLookupResponse",
    "HealthResponse",
    "ImportErrorListResponse",
    "ImportHistoryResponse",
    "ImportJobStatusResponse",
    "MassiveImportRequest",
    "MassiveImportResponse",
    "RecordErrorResponse",
]
