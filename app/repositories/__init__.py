"""
app/repositories package marker.
"""

from app.repositories.imported_record_repository import ImportedRecordRepository, RecordStore

__all__ = [
    "ImportedRecordRepository",
    "RecordStore",
]
