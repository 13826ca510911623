"""
app/mappers package marker.
"""

from app.mappers.field_mapper import FieldMapper, MappingResolution, detect_field_kind

__all__ = [
    "FieldMapper",
    "MappingResolution",
    "detect_field_kind",
]
