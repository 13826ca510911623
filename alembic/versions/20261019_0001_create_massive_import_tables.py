"""create import_jobs, imported_records and import_record_errors tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "import_jobs",
        sa.Column("id", sa.String(length=64), nullable=False, comment="Client- or server-generated job identifier"),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("imported_by", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("total_records", sa.Integer(), nullable=False),
        sa.Column("processed_records", sa.Integer(), nullable=False),
        sa.Column("failed_records", sa.Integer(), nullable=False),
        sa.Column("error_count", sa.Integer(), nullable=False),
        sa.Column("total_chunks", sa.Integer(), nullable=False),
        sa.Column("chunks_received", sa.Integer(), nullable=False),
        sa.Column("last_chunk_index", sa.Integer(), nullable=True),
        sa.Column(
            "received_chunks",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Distinct chunk indexes received so far",
        ),
        sa.Column(
            "error_details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Bounded sample of record-level error details",
        ),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("processing_time_ms", sa.BigInteger(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_jobs_entity_type", "import_jobs", ["entity_type"], unique=False)
    op.create_index("ix_import_jobs_status", "import_jobs", ["status"], unique=False)
    op.create_index("ix_import_jobs_created_at", "import_jobs", ["created_at"], unique=False)
    op.create_index(
        "ix_import_jobs_entity_type_created_at",
        "import_jobs",
        ["entity_type", "created_at"],
        unique=False,
    )

    op.create_table(
        "imported_records",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "entity_type",
            sa.String(length=64),
            nullable=False,
            comment="Storage collection, e.g. payment, tenant, property",
        ),
        sa.Column(
            "record_key",
            sa.String(length=64),
            nullable=False,
            comment="SHA-256 of the canonical payload without provenance",
        ),
        sa.Column(
            "entity_id",
            sa.String(length=255),
            nullable=True,
            comment="Profile identifier value (tenant_id, property_id) when present",
        ),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column("import_job_id", sa.String(length=64), nullable=False),
        sa.Column("imported_by", sa.String(length=255), nullable=False),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "entity_type",
            "record_key",
            name="uq_imported_records_entity_type_record_key",
        ),
    )
    op.create_index("ix_imported_records_import_job_id", "imported_records", ["import_job_id"], unique=False)
    op.create_index(
        "ix_imported_records_entity_type_entity_id",
        "imported_records",
        ["entity_type", "entity_id"],
        unique=False,
    )

    op.create_table(
        "import_record_errors",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("job_id", sa.String(length=64), nullable=False),
        sa.Column("chunk_index", sa.Integer(), nullable=False),
        sa.Column("sub_batch", sa.Integer(), nullable=True),
        sa.Column("row_number", sa.Integer(), nullable=False),
        sa.Column(
            "error_type",
            sa.String(length=32),
            nullable=False,
            comment="normalization, partial_write, total_write",
        ),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("raw_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["import_jobs.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_import_record_errors_job_id_row_number",
        "import_record_errors",
        ["job_id", "row_number"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_import_record_errors_job_id_row_number", table_name="import_record_errors")
    op.drop_table("import_record_errors")
    op.drop_index("ix_imported_records_entity_type_entity_id", table_name="imported_records")
    op.drop_index("ix_imported_records_import_job_id", table_name="imported_records")
    op.drop_table("imported_records")
    op.drop_index("ix_import_jobs_entity_type_created_at", table_name="import_jobs")
    op.drop_index("ix_import_jobs_created_at", table_name="import_jobs")
    op.drop_index("ix_import_jobs_status", table_name="import_jobs")
    op.drop_index("ix_import_jobs_entity_type", table_name="import_jobs")
    op.drop_table("import_jobs")
