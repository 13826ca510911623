"""
db/models/imported_record.py

Append-only storage for imported entity records.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin

RECORD_KEY_CONSTRAINT = "uq_imported_records_entity_type_record_key"


class ImportedRecord(Base, CreatedAtMixin):
    __tablename__ = "imported_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    entity_type: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Storage collection, e.g. payment, tenant, property",
    )
    record_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 of the canonical payload without provenance",
    )
    entity_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Profile identifier value (tenant_id, property_id) when present",
    )
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    import_job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    imported_by: Mapped[str] = mapped_column(String(255), nullable=False)
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        UniqueConstraint("entity_type", "record_key", name=RECORD_KEY_CONSTRAINT),
        Index("ix_imported_records_import_job_id", "import_job_id"),
        Index("ix_imported_records_entity_type_entity_id", "entity_type", "entity_id"),
    )
