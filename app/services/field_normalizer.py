"""
app/services/field_normalizer.py

Raw spreadsheet row -> canonical record.

The normalizer is pure: no I/O and no shared mutable state, so one
instance can be used from any number of threads and on both sides of the
wire (the import client and the ingestion endpoint).
"""

from __future__ import annotations

from typing import Any, Mapping

from app.domain.canonical_record import CanonicalRecord, FieldError, FieldSeverity, RawRecord
from app.domain.entity_profiles import GENERIC_PROFILE, EntityProfile, get_profile
from app.errors import FieldNormalizationError
from app.mappers.field_mapper import FieldMapper
from app.validators.value_coercion import ValueCoercer, is_blank, stringify_value


class FieldNormalizer:
    """
    Maps, coerces, and checks required fields for one raw record at a time.
    """

    def __init__(
        self,
        *,
        mapper: FieldMapper | None = None,
        coercer: ValueCoercer | None = None,
    ) -> None:
        self._mapper = mapper or FieldMapper()
        self._coercer = coercer or ValueCoercer()

    def normalize(
        self,
        raw_record: RawRecord,
        entity_type: str,
        *,
        row_number: int = 1,
    ) -> tuple[CanonicalRecord, list[FieldError]]:
        """
        Normalize one record. The record is always returned, even when it has errors.

        Args:
            raw_record:  Source column label -> raw value.
            entity_type: Entity type name (``Payment``, ``tenants``...). Unknown
                         types use the generic profile.
            row_number:  1-indexed position of the row in the source dataset.
        """

        profile = get_profile(entity_type)
        errors: list[FieldError] = []
        resolution = self._mapper.resolve(raw_record, profile)

        fields: dict[str, Any] = {}
        for canonical_field, spec in profile.fields.items():
            source_column = resolution.canonical_to_source.get(canonical_field)
            raw_value = raw_record.get(source_column) if source_column is not None else None
            if is_blank(raw_value):
                if spec.default is not None:
                    fields[canonical_field] = spec.default
                continue
            fields[canonical_field] = self._coercer.coerce(
                column=canonical_field,
                spec=spec,
                value=raw_value,
                row_number=row_number,
                errors=errors,
            )

        errors.extend(
            self._check_required(
                fields=fields,
                profile=profile,
                row_number=row_number,
                coercion_errors=errors,
            )
        )

        extras = {
            column: raw_record[column]
            for column in resolution.unmapped_columns
            if not is_blank(raw_record[column])
        }
        record = CanonicalRecord(
            entity_type=entity_type if profile is GENERIC_PROFILE else profile.name,
            row_number=row_number,
            fields=fields,
            extras=extras,
        )
        return record, errors

    def normalize_valid(
        self,
        raw_record: RawRecord,
        entity_type: str,
        *,
        row_number: int = 1,
    ) -> tuple[CanonicalRecord, list[FieldError]]:
        """
        Normalize one record, raising ``FieldNormalizationError`` if it has blocking errors.

        Warnings are returned alongside the record.
        """

        record, errors = self.normalize(raw_record, entity_type, row_number=row_number)
        blocking = [error for error in errors if error.is_error]
        if blocking:
            raise FieldNormalizationError(row_number=row_number, errors=blocking)
        return record, errors

    def _check_required(
        self,
        *,
        fields: Mapping[str, Any],
        profile: EntityProfile,
        row_number: int,
        coercion_errors: list[FieldError],
    ) -> list[FieldError]:
        already_reported = {error.column for error in coercion_errors if error.is_error}
        missing: list[FieldError] = []

        for name in profile.required_fields:
            if name in already_reported:
                continue
            if is_blank(fields.get(name)):
                missing.append(_missing(row_number, name, f"Missing {name} value"))

        for group in profile.required_any:
            if any(not is_blank(fields.get(name)) for name in group):
                continue
            if any(name in already_reported for name in group):
                continue
            missing.append(
                _missing(
                    row_number,
                    group[0],
                    f"Missing {group[0]} value (one of {', '.join(group)} is required)",
                )
            )
        return missing


def _missing(row_number: int, column: str, message: str) -> FieldError:
    return FieldError(
        row_number=row_number,
        column=column,
        message=message,
        severity=FieldSeverity.ERROR,
        value=stringify_value(None),
    )
