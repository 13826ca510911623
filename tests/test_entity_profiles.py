from __future__ import annotations

import pytest

from app.domain.entity_profiles import (
    GENERIC_PROFILE,
    PAYMENT_PROFILE,
    PROPERTY_PROFILE,
    TENANT_PROFILE,
    EntityProfile,
    FieldSpec,
    collection_for,
    get_profile,
    normalize_header,
    validate_alias_table,
)


@pytest.mark.parametrize(
    ("entity_type", "expected"),
    [
        ("Payment", PAYMENT_PROFILE),
        ("payments", PAYMENT_PROFILE),
        (" TENANT ", TENANT_PROFILE),
        ("properties", PROPERTY_PROFILE),
        ("Contract", GENERIC_PROFILE),
    ],
)
def test_get_profile_lookup(entity_type, expected) -> None:
    assert get_profile(entity_type) is expected


def test_collection_for_generic_types_uses_the_type_name() -> None:
    assert collection_for("Payment") == "payment"
    assert collection_for(" Contract ") == "contract"


def test_alias_table_lists_canonical_name_first() -> None:
    aliases = PAYMENT_PROFILE.alias_table()["payment_date"]

    assert aliases[0] == "payment_date"
    assert aliases[1] == "תאריך תשלום"


def test_normalize_header_collapses_whitespace_and_case() -> None:
    assert normalize_header("  Payment   DATE ") == "payment date"


def test_conflicting_aliases_are_rejected() -> None:
    profile = EntityProfile(
        name="Broken",
        collection="broken",
        fields={
            "full_name": FieldSpec(aliases=("name",)),
            "title": FieldSpec(aliases=("Name",)),
        },
    )

    with pytest.raises(ValueError, match="Broken"):
        validate_alias_table(profile)


def test_required_fields_must_be_declared() -> None:
    profile = EntityProfile(
        name="Broken",
        collection="broken",
        fields={"full_name": FieldSpec(aliases=())},
        required_any=(("full_name", "tenant_id"),),
    )

    with pytest.raises(ValueError, match="tenant_id"):
        validate_alias_table(profile)
