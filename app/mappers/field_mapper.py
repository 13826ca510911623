"""
app/mappers/field_mapper.py

Maps source column labels onto an entity profile's canonical fields.

Resolution order for each canonical field:
    1. exact or alias match on the normalized header (alias table order)
    2. content detection on the values of still-unmapped columns
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Mapping

from app.domain.entity_profiles import EntityProfile, normalize_header
from app.validators.value_coercion import is_blank

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-().]+$")
DAY_FIRST_DATE_PATTERN = re.compile(r"^\d{1,2}[/\-.]\d{1,2}[/\-.](\d{2}|\d{4})$")

MIN_PHONE_DIGITS = 9


@dataclass(frozen=True)
class MappingResolution:
    """
    Resolved canonical-to-source mapping for one record's columns.
    """

    canonical_to_source: dict[str, str]
    match_strategies: dict[str, str]
    unmapped_columns: tuple[str, ...]


class FieldMapper:
    """
    Resolves raw record columns into canonical field names.
    """

    def resolve(self, raw_record: Mapping[str, Any], profile: EntityProfile) -> MappingResolution:
        headers = tuple(str(key) for key in raw_record.keys())
        resolved, strategies = _resolve_aliases(headers, profile)

        used = set(resolved.values())
        unmapped = [header for header in headers if header not in used]
        for canonical_field, header in self._detect_by_content(
            raw_record=raw_record,
            unmapped=unmapped,
            profile=profile,
            already_mapped=resolved,
        ):
            resolved[canonical_field] = header
            strategies[canonical_field] = "detected"
            unmapped.remove(header)

        return MappingResolution(
            canonical_to_source=resolved,
            match_strategies=strategies,
            unmapped_columns=tuple(unmapped),
        )

    def _detect_by_content(
        self,
        *,
        raw_record: Mapping[str, Any],
        unmapped: Iterable[str],
        profile: EntityProfile,
        already_mapped: Mapping[str, str],
    ) -> list[tuple[str, str]]:
        detected: list[tuple[str, str]] = []
        claimed = set(already_mapped)
        for header in unmapped:
            value = raw_record.get(header)
            if is_blank(value):
                continue
            target = detect_field_kind(value, profile)
            if target is None or target in claimed:
                continue
            claimed.add(target)
            detected.append((target, header))
        return detected


def detect_field_kind(value: Any, profile: EntityProfile) -> str | None:
    """
    Guess a canonical field from a cell's content, or None when nothing fits.

    Purely numeric values are never auto-mapped; they collide with ids,
    amounts and counts.
    """

    if isinstance(value, (int, float)):
        return None
    text = str(value).strip()
    if text.isdigit():
        return None

    if EMAIL_PATTERN.match(text) and "email" in profile.fields:
        return "email"
    if DAY_FIRST_DATE_PATTERN.match(text):
        return profile.detection_date_field
    if PHONE_PATTERN.match(text) and "phone" in profile.fields:
        digits = sum(1 for ch in text if ch.isdigit())
        if digits >= MIN_PHONE_DIGITS:
            return "phone"
    return None


@lru_cache(maxsize=256)
def _resolve_alias_cached(
    headers: tuple[str, ...],
    profile_name: str,
    alias_items: tuple[tuple[str, tuple[str, ...]], ...],
) -> tuple[tuple[str, str], ...]:
    lookup: dict[str, str] = {}
    for header in headers:
        lookup.setdefault(normalize_header(header), header)

    matches: list[tuple[str, str]] = []
    used: set[str] = set()
    for canonical_field, aliases in alias_items:
        for alias in aliases:
            header = lookup.get(normalize_header(alias))
            if header is not None and header not in used:
                matches.append((canonical_field, header))
                used.add(header)
                break
    return tuple(matches)


def _resolve_aliases(
    headers: tuple[str, ...],
    profile: EntityProfile,
) -> tuple[dict[str, str], dict[str, str]]:
    alias_items = tuple(profile.alias_table().items())
    matches = _resolve_alias_cached(headers, profile.name, alias_items)
    resolved = dict(matches)
    strategies = {canonical_field: "exact_or_alias" for canonical_field in resolved}
    return resolved, strategies
