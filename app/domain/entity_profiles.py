"""
app/domain/entity_profiles.py

Per-entity-type strategy table: aliases, field kinds, required fields,
defaults, identifier field and foreign references.

Alias tables are checked for disjointness when the registry is built, so a
conflicting alias fails at import time instead of silently mis-mapping rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


class FieldKind:
    TEXT = "text"
    IDENTIFIER = "identifier"
    DATE = "date"
    AMOUNT = "amount"
    INTEGER = "integer"
    ENUM = "enum"
    EMAIL = "email"
    PHONE = "phone"


STATUS_TRANSLATIONS: dict[str, str] = {
    "פעיל": "active",
    "active": "active",
    "לא פעיל": "inactive",
    "inactive": "inactive",
    "שולם": "paid",
    "paid": "paid",
    "ממתין": "pending",
    "pending": "pending",
    "באיחור": "overdue",
    "overdue": "overdue",
    "בוטל": "cancelled",
    "cancelled": "cancelled",
}

PROPERTY_STATUS_TRANSLATIONS: dict[str, str] = {
    "פנוי": "available",
    "available": "available",
    "מושכר": "rented",
    "rented": "rented",
    "בתחזוקה": "maintenance",
    "תחזוקה": "maintenance",
    "maintenance": "maintenance",
}

PAYMENT_TYPE_TRANSLATIONS: dict[str, str] = {
    "חשמל": "electricity",
    "מים": "water",
    "גז": "gas",
    "ועד בית": "vaad_bait",
    "שכר דירה": "rent",
    "ארנונה": "arnona",
    "תחזוקה": "maintenance",
    "אחר": "other",
}

PAYMENT_METHOD_TRANSLATIONS: dict[str, str] = {
    "העברה בנקאית": "bank_transfer",
    "ביט": "bit",
    "אשראי": "credit_card",
    "כרטיס אשראי": "credit_card",
    "מזומן": "cash",
    "צק": "check",
    "צ'ק": "check",
    "שיק": "check",
}

PROPERTY_TYPE_TRANSLATIONS: dict[str, str] = {
    "דירה": "apartment",
    "בית": "house",
    "משרד": "office",
    "חנות": "store",
    "מחסן": "storage",
    "בניין": "building",
}


@dataclass(frozen=True)
class FieldSpec:
    """
    How one canonical field is recognized and coerced.
    """

    aliases: tuple[str, ...]
    kind: str = FieldKind.TEXT
    translations: Mapping[str, str] | None = None
    default: str | None = None


@dataclass(frozen=True)
class EntityProfile:
    """
    Strategy entry for one entity type.
    """

    name: str
    collection: str
    fields: Mapping[str, FieldSpec]
    required_fields: tuple[str, ...] = ()
    required_any: tuple[tuple[str, ...], ...] = ()
    detection_date_field: str | None = None
    id_field: str | None = None
    references: Mapping[str, str] = field(default_factory=dict)
    lookup_names: tuple[str, ...] = ()

    @property
    def canonical_fields(self) -> tuple[str, ...]:
        return tuple(self.fields)

    def alias_table(self) -> dict[str, tuple[str, ...]]:
        """
        Canonical field -> recognized spellings, canonical name first.
        """

        return {
            canonical: (canonical, *(alias for alias in spec.aliases if alias != canonical))
            for canonical, spec in self.fields.items()
        }


def normalize_header(header: object) -> str:
    """
    Normalize a column label for case-insensitive alias matching.
    """

    return " ".join(str(header).split()).casefold()


def validate_alias_table(profile: EntityProfile) -> None:
    """
    Raise ValueError when one alias maps to more than one canonical field.
    """

    owner_by_alias: dict[str, str] = {}
    conflicts: list[str] = []
    for canonical, aliases in profile.alias_table().items():
        for alias in aliases:
            key = normalize_header(alias)
            owner = owner_by_alias.setdefault(key, canonical)
            if owner != canonical:
                conflicts.append(f"{alias!r} -> {owner}, {canonical}")

    for group in profile.required_any:
        for member in group:
            if member not in profile.fields:
                conflicts.append(f"required group member {member!r} is not a declared field")
    for name in profile.required_fields:
        if name not in profile.fields:
            conflicts.append(f"required field {name!r} is not a declared field")

    if conflicts:
        raise ValueError(
            f"Entity profile {profile.name!r} has an invalid alias table: " + "; ".join(conflicts)
        )


_FULL_NAME = FieldSpec(aliases=("name", "שם", "שם מלא", "שם דייר", "tenant_name"))
_EMAIL = FieldSpec(aliases=("email", "e-mail", "mail", "אימייל", "דואל", 'דוא"ל'), kind=FieldKind.EMAIL)
_PHONE = FieldSpec(
    aliases=("phone", "mobile", "telephone", "טלפון", "נייד", "מספר טלפון"),
    kind=FieldKind.PHONE,
)
_TENANT_ID = FieldSpec(aliases=("tenant_id", "מזהה דייר", "ת.ז", "תז", "תעודת זהות"), kind=FieldKind.IDENTIFIER)
_PROPERTY_ID = FieldSpec(aliases=("property_id", "prop_id", "מזהה נכס"), kind=FieldKind.IDENTIFIER)


GENERIC_PROFILE = EntityProfile(
    name="Generic",
    collection="generic",
    fields={
        "full_name": _FULL_NAME,
        "status": FieldSpec(
            aliases=("status", "סטטוס", "מצב"),
            kind=FieldKind.ENUM,
            translations=STATUS_TRANSLATIONS,
            default="active",
        ),
        "total_units": FieldSpec(
            aliases=("units", "unit_count", "יחידות", "סהכ יחידות"),
            kind=FieldKind.INTEGER,
        ),
        "start_date": FieldSpec(aliases=("start", "תאריך התחלה", "תחילת תאריך"), kind=FieldKind.DATE),
        "tenant_id": FieldSpec(aliases=("id", "מזהה דייר", "ת.ז", "תז"), kind=FieldKind.IDENTIFIER),
        "property_id": _PROPERTY_ID,
        "amount": FieldSpec(aliases=("סכום", "price", "cost"), kind=FieldKind.AMOUNT),
        "email": _EMAIL,
        "phone": _PHONE,
    },
    required_fields=("full_name",),
    detection_date_field="start_date",
    references={"tenant_id": "tenants", "property_id": "properties"},
)

PAYMENT_PROFILE = EntityProfile(
    name="Payment",
    collection="payment",
    fields={
        "full_name": _FULL_NAME,
        "tenant_id": _TENANT_ID,
        "property_id": _PROPERTY_ID,
        "amount": FieldSpec(aliases=("סכום", "price", "cost", "sum"), kind=FieldKind.AMOUNT),
        "payment_date": FieldSpec(
            aliases=("תאריך תשלום", "date", "תאריך", "paid_on"),
            kind=FieldKind.DATE,
        ),
        "payment_type": FieldSpec(
            aliases=("סוג תשלום", "type"),
            kind=FieldKind.ENUM,
            translations=PAYMENT_TYPE_TRANSLATIONS,
            default="other",
        ),
        "payment_method": FieldSpec(
            aliases=("אמצעי תשלום", "method"),
            kind=FieldKind.ENUM,
            translations=PAYMENT_METHOD_TRANSLATIONS,
            default="bank_transfer",
        ),
        "status": FieldSpec(
            aliases=("סטטוס", "מצב"),
            kind=FieldKind.ENUM,
            translations=STATUS_TRANSLATIONS,
            default="pending",
        ),
        "receipt_number": FieldSpec(aliases=("מספר אסמכתא", "אסמכתא", "receipt"), kind=FieldKind.IDENTIFIER),
        "description": FieldSpec(aliases=("הערות", "notes", "תיאור")),
        "email": _EMAIL,
        "phone": _PHONE,
    },
    required_fields=("amount", "payment_date"),
    required_any=(("full_name", "tenant_id"),),
    detection_date_field="payment_date",
    references={"tenant_id": "tenants", "property_id": "properties"},
    lookup_names=("payments",),
)

TENANT_PROFILE = EntityProfile(
    name="Tenant",
    collection="tenant",
    fields={
        "tenant_id": _TENANT_ID,
        "full_name": _FULL_NAME,
        "email": _EMAIL,
        "phone": _PHONE,
        "property_id": _PROPERTY_ID,
        "lease_start": FieldSpec(
            aliases=("start_date", "תאריך התחלה", "תחילת חוזה", "תחילת שכירות"),
            kind=FieldKind.DATE,
        ),
        "lease_end": FieldSpec(
            aliases=("end_date", "תאריך סיום", "סיום חוזה", "סיום שכירות"),
            kind=FieldKind.DATE,
        ),
        "monthly_rent": FieldSpec(aliases=("rent", "שכר דירה", "שכירות חודשית"), kind=FieldKind.AMOUNT),
        "status": FieldSpec(
            aliases=("סטטוס", "מצב"),
            kind=FieldKind.ENUM,
            translations=STATUS_TRANSLATIONS,
            default="active",
        ),
    },
    required_fields=("full_name",),
    detection_date_field="lease_start",
    id_field="tenant_id",
    references={"property_id": "properties"},
    lookup_names=("tenants",),
)

PROPERTY_PROFILE = EntityProfile(
    name="Property",
    collection="property",
    fields={
        "property_id": _PROPERTY_ID,
        "name": FieldSpec(aliases=("שם", "שם הנכס", "property_name")),
        "property_type": FieldSpec(
            aliases=("type", "סוג", "סוג נכס"),
            kind=FieldKind.ENUM,
            translations=PROPERTY_TYPE_TRANSLATIONS,
        ),
        "total_units": FieldSpec(aliases=("units", "יחידות", "מספר יחידות"), kind=FieldKind.INTEGER),
        "rooms": FieldSpec(aliases=("חדרים", "מספר חדרים"), kind=FieldKind.INTEGER),
        "size_sqm": FieldSpec(aliases=("size", "גודל", 'מ"ר', "שטח"), kind=FieldKind.AMOUNT),
        "status": FieldSpec(
            aliases=("סטטוס", "מצב"),
            kind=FieldKind.ENUM,
            translations=PROPERTY_STATUS_TRANSLATIONS,
        ),
        "address_street": FieldSpec(aliases=("address", "street", "כתובת", "רחוב")),
        "address_city": FieldSpec(aliases=("city", "עיר", "city_name")),
        "owner_id": FieldSpec(aliases=("owner", "מזהה בעלים"), kind=FieldKind.IDENTIFIER),
    },
    required_fields=("name",),
    id_field="property_id",
    lookup_names=("properties",),
)


def _build_registry(*profiles: EntityProfile) -> dict[str, EntityProfile]:
    registry: dict[str, EntityProfile] = {}
    for profile in profiles:
        validate_alias_table(profile)
        for key in (profile.name, profile.collection, *profile.lookup_names):
            registry[key.strip().lower()] = profile
    return registry


ENTITY_PROFILES: dict[str, EntityProfile] = _build_registry(
    PAYMENT_PROFILE,
    TENANT_PROFILE,
    PROPERTY_PROFILE,
)
validate_alias_table(GENERIC_PROFILE)


def get_profile(entity_type: str) -> EntityProfile:
    """
    Return the profile for an entity type, falling back to the generic profile.
    """

    return ENTITY_PROFILES.get(entity_type.strip().lower(), GENERIC_PROFILE)


def collection_for(entity_type: str) -> str:
    """
    Storage collection name for an entity type.
    """

    profile = get_profile(entity_type)
    if profile is GENERIC_PROFILE:
        return entity_type.strip().lower()
    return profile.collection
