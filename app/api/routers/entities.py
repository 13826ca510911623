"""
Entity lookup endpoint used by the resolution cache.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dependencies import get_imported_record_repository, get_lookup_ids
from app.repositories.imported_record_repository import ImportedRecordRepository
from app.schemas.massive_import import EntityLookupResponse

router = APIRouter(prefix="/api", tags=["entities"])


@router.get("/entities/{entity_type}", response_model=EntityLookupResponse)
def lookup_entities(
    entity_type: str,
    ids: list[str] = Depends(get_lookup_ids),
    repository: ImportedRecordRepository = Depends(get_imported_record_repository),
) -> EntityLookupResponse:
    return EntityLookupResponse(entities=repository.find_by_ids(entity_type, ids))
