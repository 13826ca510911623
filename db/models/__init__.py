"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.import_job import ImportJob, ImportJobStatus
from db.models.import_record_error import ImportRecordError
from db.models.imported_record import ImportedRecord

__all__ = [
    "ImportJob",
    "ImportJobStatus",
    "ImportRecordError",
    "ImportedRecord",
]
