"""
app/validators/value_coercion.py

Per-field value coercion for canonical records.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Mapping

from app.domain.canonical_record import FieldError, FieldSeverity
from app.domain.entity_profiles import FieldKind, FieldSpec

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DAY_FIRST_DATE_PATTERN = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2}|\d{4})$")
ISO_DATETIME_PREFIX_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]\d{2}:\d{2}")
AMOUNT_STRIP_PATTERN = re.compile(r"[^0-9.\-]")


class ValueCoercer:
    """
    Coerces raw cell values according to a field's kind.

    Problems are appended to ``errors``; nothing is raised.
    """

    def coerce(
        self,
        *,
        column: str,
        spec: FieldSpec,
        value: Any,
        row_number: int,
        errors: list[FieldError],
    ) -> Any:
        if spec.kind == FieldKind.DATE:
            return self._parse_date(column=column, value=value, row_number=row_number, errors=errors)
        if spec.kind == FieldKind.AMOUNT:
            return self._parse_amount(column=column, value=value, row_number=row_number, errors=errors)
        if spec.kind == FieldKind.INTEGER:
            parsed = self._parse_amount(column=column, value=value, row_number=row_number, errors=errors)
            return None if parsed is None else int(parsed)
        if spec.kind == FieldKind.ENUM:
            return self.translate(value, spec.translations or {})
        if spec.kind == FieldKind.EMAIL:
            return str(value).strip().lower()
        if spec.kind == FieldKind.PHONE:
            return normalize_phone(value)
        if spec.kind == FieldKind.IDENTIFIER:
            return normalize_identifier(value)
        return str(value).strip()

    @staticmethod
    def translate(value: Any, translations: Mapping[str, str]) -> str:
        """
        Map a free-text label to its canonical token; unknown labels are lower-cased.
        """

        trimmed = str(value).strip()
        if trimmed in translations:
            return translations[trimmed]
        lowered = trimmed.lower()
        return translations.get(lowered, lowered)

    def _parse_date(
        self,
        *,
        column: str,
        value: Any,
        row_number: int,
        errors: list[FieldError],
    ) -> str:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()

        raw = str(value).strip()
        if ISO_DATE_PATTERN.match(raw):
            if _is_real_date(raw):
                return raw
            errors.append(_warning(row_number, column, "Date is not a valid calendar date.", raw))
            return raw

        datetime_prefix = ISO_DATETIME_PREFIX_PATTERN.match(raw)
        if datetime_prefix and _is_real_date(datetime_prefix.group(1)):
            return datetime_prefix.group(1)

        match = DAY_FIRST_DATE_PATTERN.match(raw)
        if match:
            day, month, year = match.groups()
            if len(year) == 2:
                year = f"20{year}"
            candidate = f"{year}-{int(month):02d}-{int(day):02d}"
            if _is_real_date(candidate):
                return candidate

        # Unparseable dates are kept verbatim so no source data is lost.
        errors.append(_warning(row_number, column, "Unrecognized date format; value kept as-is.", raw))
        return raw

    def _parse_amount(
        self,
        *,
        column: str,
        value: Any,
        row_number: int,
        errors: list[FieldError],
    ) -> float | None:
        if isinstance(value, bool):
            value = str(value)
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                errors.append(_error(row_number, column, "Amount is not a finite number.", str(value)))
                return None
            return float(value)

        raw = str(value).strip()
        cleaned = AMOUNT_STRIP_PATTERN.sub("", raw)
        try:
            parsed = float(cleaned)
        except ValueError:
            errors.append(_error(row_number, column, "Amount could not be parsed as a number.", raw))
            return None
        if not math.isfinite(parsed):
            errors.append(_error(row_number, column, "Amount is not a finite number.", raw))
            return None
        return parsed


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == ""


def stringify_value(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def normalize_identifier(value: Any) -> str:
    """
    Trim identifiers and drop the ``.0`` spreadsheets add to whole numbers.
    """

    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_phone(value: Any) -> str:
    """
    Keep digits and a leading plus sign.
    """

    raw = normalize_identifier(value)
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"+{digits}" if raw.startswith("+") else digits


def _is_real_date(iso_value: str) -> bool:
    try:
        date.fromisoformat(iso_value)
    except ValueError:
        return False
    return True


def _error(row_number: int, column: str, message: str, value: str | None) -> FieldError:
    return FieldError(
        row_number=row_number,
        column=column,
        message=message,
        severity=FieldSeverity.ERROR,
        value=value,
    )


def _warning(row_number: int, column: str, message: str, value: str | None) -> FieldError:
    return FieldError(
        row_number=row_number,
        column=column,
        message=message,
        severity=FieldSeverity.WARNING,
        value=value,
    )
