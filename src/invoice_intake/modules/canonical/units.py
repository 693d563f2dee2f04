from __future__ import annotations

import enum
import re


class UnitCategory(str, enum.Enum):
    WEIGHT = "WEIGHT"
    VOLUME = "VOLUME"
    UNIT = "UNIT"
    UNKNOWN = "UNKNOWN"


WEIGHT_UNITS = frozenset({"KG", "KILO", "G", "GM", "GRAM", "GRAMS", "KILOGRAM", "KILOGRAMS"})
VOLUME_UNITS = frozenset({"L", "LT", "LTR", "LITRE", "LITER", "ML", "MILLILITRE", "MILLILITER"})

UNIT_SYNONYMS = {
    "KGS": "KG",
    "KILOS": "KG",
    "KILO": "KG",
    "KILOGRAM": "KG",
    "KILOGRAMS": "KG",
    "GR": "G",
    "GRAM": "G",
    "GRAMS": "G",
    "LTR": "L",
    "LITRE": "L",
    "LITRES": "L",
    "LITER": "L",
    "LITERS": "L",
    "MILLILITRE": "ML",
    "MILLILITRES": "ML",
    "MILLILITER": "ML",
    "MILLILITERS": "ML",
    "EA": "EACH",
    "UNITS": "UNIT",
}

_UNIT_WORDS = (
    "KG|KGS|KILO|KILOS|KILOGRAM|KILOGRAMS|G|GM|GR|GRAM|GRAMS|L|LT|LTR|LITRE|LITRES|LITER|LITERS|"
    "ML|MILLILITRE|MILLILITRES|MILLILITER|MILLILITERS"
)
# "2kg", "500 ml", "4x5KG" (inner "5KG")
_UNIT_IN_DESCRIPTION_RE = re.compile(rf"\d+(?:[.,]\d+)?\s?({_UNIT_WORDS})\b", re.IGNORECASE)
# Trailing unit word in a quantity cell: "8.42 KILO", "2 EA", "1 CTN"
_UNIT_IN_QUANTITY_RE = re.compile(r"^\s*-?\d+(?:[.,]\d+)?\s*([A-Za-z]{1,12})\.?\s*$")


def normalize_unit_label(raw: str | None) -> str | None:
    value = (raw or "").strip()
    if not value:
        return None
    return " ".join(value.upper().split())


def extract_unit_from_description(description: str | None) -> str | None:
    match = _UNIT_IN_DESCRIPTION_RE.search(description or "")
    if not match:
        return None
    return normalize_unit_label(match.group(1))


def extract_unit_from_quantity(quantity_text: str | None) -> str | None:
    match = _UNIT_IN_QUANTITY_RE.match(quantity_text or "")
    if not match:
        return None
    return normalize_unit_label(match.group(1))


def canonicalize_unit_label(
    unit_label: str | None, *, description: str | None = None
) -> str | None:
    normalized = normalize_unit_label(unit_label)
    if normalized is None and description:
        normalized = extract_unit_from_description(description)
    if normalized is None:
        return None
    return UNIT_SYNONYMS.get(normalized, normalized)


def unit_category(unit_label: str | None) -> UnitCategory:
    normalized = normalize_unit_label(unit_label)
    if normalized is None:
        return UnitCategory.UNKNOWN
    mapped = UNIT_SYNONYMS.get(normalized, normalized)
    if mapped in WEIGHT_UNITS:
        return UnitCategory.WEIGHT
    if mapped in VOLUME_UNITS:
        return UnitCategory.VOLUME
    return UnitCategory.UNIT
