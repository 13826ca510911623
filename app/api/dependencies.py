"""
app/api/dependencies.py

Shared FastAPI dependencies for request parsing and repository wiring.
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.repositories.imported_record_repository import ImportedRecordRepository
from db.repositories.import_job_repository import ImportJobRepository
from db.session import get_db

MAX_LOOKUP_IDS = 500


def get_header_job_id(x_job_id: str | None = Header(default=None, alias="X-Job-Id")) -> str | None:
    """
    Job id supplied by the import client, if any.
    """

    if x_job_id is None:
        return None
    stripped = x_job_id.strip()
    return stripped or None


def resolve_job_id(header_job_id: str | None, body_job_id: str | None) -> str:
    """
    Header wins over body; a fresh UUID4 is generated when neither is given.
    """

    for candidate in (header_job_id, body_job_id):
        if candidate and candidate.strip():
            return candidate.strip()
    return str(uuid.uuid4())


def get_lookup_ids(ids: str = Query(default="", description="Comma-separated entity ids")) -> list[str]:
    """
    Parse ``?ids=a,b,c`` into unique, trimmed ids.
    """

    parsed = list(dict.fromkeys(part.strip() for part in ids.split(",") if part.strip()))
    if not parsed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one id is required.",
        )
    if len(parsed) > MAX_LOOKUP_IDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_LOOKUP_IDS} ids can be looked up per request.",
        )
    return parsed


def get_import_job_repository(db: Session = Depends(get_db)) -> ImportJobRepository:
    return ImportJobRepository(db)


def get_imported_record_repository(db: Session = Depends(get_db)) -> ImportedRecordRepository:
    return ImportedRecordRepository(db)
