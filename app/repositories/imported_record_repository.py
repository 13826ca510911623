"""
app/repositories/imported_record_repository.py

Persistence layer for imported entity records.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import Any, Protocol

from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.canonical_record import CanonicalRecord, InsertOutcome, RecordRejection
from app.domain.entity_profiles import collection_for, get_profile
from app.errors import PartialWriteError, StoreUnavailableError, TotalWriteError
from db.models.imported_record import RECORD_KEY_CONSTRAINT, ImportedRecord


class RecordStore(Protocol):
    def ping(self) -> None: ...

    def insert_batch(self, records: Sequence[CanonicalRecord]) -> InsertOutcome: ...


def compute_record_key(entity_type: str, content: dict[str, Any]) -> str:
    """
    Content key used for duplicate detection. Provenance is never part of it.
    """

    canonical = json.dumps(content, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(f"{entity_type}\x1f{canonical}".encode("utf-8")).hexdigest()


class ImportedRecordRepository:
    """
    Append-only record writes. The caller owns commit and rollback.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def ping(self) -> None:
        try:
            self._session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            raise StoreUnavailableError("Record store is unreachable.") from exc

    def insert_batch(self, records: Sequence[CanonicalRecord]) -> InsertOutcome:
        """
        Insert one sub-batch with ``ON CONFLICT DO NOTHING``.

        Raises:
            PartialWriteError: some rows were duplicates of stored (or sibling) rows.
            TotalWriteError:   the statement itself failed; nothing was written.
        """

        if not records:
            return InsertOutcome(inserted_rows=())

        payloads: list[dict[str, Any]] = []
        rejections: list[RecordRejection] = []
        seen: set[tuple[str, str]] = set()

        for record in records:
            row = self._to_row(record)
            dedupe_key = (row["entity_type"], row["record_key"])
            if dedupe_key in seen:
                rejections.append(
                    RecordRejection(
                        row_number=record.row_number,
                        reason="Duplicate record within the same batch.",
                    )
                )
                continue
            seen.add(dedupe_key)
            payloads.append(row)

        stmt = (
            insert(ImportedRecord)
            .values(payloads)
            .on_conflict_do_nothing(constraint=RECORD_KEY_CONSTRAINT)
            .returning(ImportedRecord.row_number)
        )
        try:
            inserted_rows = tuple(self._session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise TotalWriteError(f"Batch insert failed: {exc.__class__.__name__}") from exc

        inserted = set(inserted_rows)
        rejections.extend(
            RecordRejection(
                row_number=row["row_number"],
                reason="Duplicate record: identical content already imported.",
            )
            for row in payloads
            if row["row_number"] not in inserted
        )
        if rejections:
            raise PartialWriteError(
                inserted_rows=sorted(inserted),
                rejections=sorted(rejections, key=lambda rejection: rejection.row_number),
            )
        return InsertOutcome(inserted_rows=tuple(sorted(inserted)))

    def find_by_ids(self, entity_type: str, ids: Sequence[str]) -> dict[str, dict[str, Any]]:
        """
        Latest stored payload per entity id for lookup-by-id clients.
        """

        if not ids:
            return {}
        stmt = (
            select(ImportedRecord.entity_id, ImportedRecord.payload)
            .where(ImportedRecord.entity_type == collection_for(entity_type))
            .where(ImportedRecord.entity_id.in_(list(ids)))
            .order_by(ImportedRecord.created_at.asc())
        )
        return {entity_id: payload for entity_id, payload in self._session.execute(stmt).all()}

    @staticmethod
    def _to_row(record: CanonicalRecord) -> dict[str, Any]:
        if record.provenance is None:
            raise ValueError(f"Row {record.row_number} has no provenance stamp.")
        collection = collection_for(record.entity_type)
        id_field = get_profile(record.entity_type).id_field
        entity_id = record.get(id_field) if id_field else None
        return {
            "entity_type": collection,
            "record_key": compute_record_key(collection, record.content()),
            "entity_id": str(entity_id) if entity_id not in (None, "") else None,
            "row_number": record.row_number,
            "import_job_id": record.provenance.import_job_id,
            "imported_by": record.provenance.imported_by,
            "imported_at": record.provenance.imported_at,
            "payload": record.to_payload(),
        }
