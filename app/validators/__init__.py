"""
app/validators package marker.
"""

from app.validators.value_coercion import ValueCoercer, is_blank

__all__ = [
    "ValueCoercer",
    "is_blank",
]
