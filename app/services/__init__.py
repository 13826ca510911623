"""
app/services package marker.
"""

from app.services.batch_ingestion_service import BatchIngestionService, get_batch_ingestion_service
from app.services.field_normalizer import FieldNormalizer

__all__ = [
    "BatchIngestionService",
    "FieldNormalizer",
    "get_batch_ingestion_service",
]
