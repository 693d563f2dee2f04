from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

UNIT_PRICE_DOT_3DP_MAX_REASONABLE = Decimal("100")

_CENT = Decimal("0.01")
_US_MIXED_RE = re.compile(r"^-?\d{1,3}(?:,\d{3})+(?:\.\d+)?$")
_EU_MIXED_RE = re.compile(r"^-?\d{1,3}(?:\.\d{3})+(?:,\d+)?$")
_COMMA_GROUPED_RE = re.compile(r"^-?\d{1,3}(?:,\d{3})+$")
_NUMERIC_CHARS_RE = re.compile(r"^-?[0-9.,]+$")


class FieldKind(str, enum.Enum):
    LINE_TOTAL = "LINE_TOTAL"
    UNIT_PRICE = "UNIT_PRICE"
    TAX = "TAX"
    DISCOUNT = "DISCOUNT"
    OTHER = "OTHER"


class ParseConfidence(str, enum.Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class ParseFailureReason(str, enum.Enum):
    AMBIGUOUS_DECIMAL_SEPARATOR = "AMBIGUOUS_DECIMAL_SEPARATOR"
    INVALID_FORMAT = "INVALID_FORMAT"


@dataclass(frozen=True)
class ParsedMoney:
    value: Decimal | None
    confidence: ParseConfidence
    reason: ParseFailureReason | None = None
    cents: int | None = None
    normalized: str | None = None
    was_normalized: bool = False
    display_2dp: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _max_decimals(kind: FieldKind, override: int | None) -> int:
    if override is not None:
        return override
    return 4 if kind == FieldKind.UNIT_PRICE else 2


def _invalid(was_normalized: bool) -> ParsedMoney:
    return ParsedMoney(
        value=None,
        confidence=ParseConfidence.LOW,
        reason=ParseFailureReason.INVALID_FORMAT,
        was_normalized=was_normalized,
    )


def _ambiguous(was_normalized: bool) -> ParsedMoney:
    return ParsedMoney(
        value=None,
        confidence=ParseConfidence.LOW,
        reason=ParseFailureReason.AMBIGUOUS_DECIMAL_SEPARATOR,
        was_normalized=was_normalized,
    )


def _to_decimal(text: str) -> Decimal | None:
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def _finalize(
    normalized: str, *, kind: FieldKind, max_decimals: int, was_normalized: bool
) -> ParsedMoney:
    value = _to_decimal(normalized)
    if value is None:
        return _invalid(was_normalized)

    _, _, frac = normalized.partition(".")
    if len(frac) > max_decimals:
        return _invalid(was_normalized)

    if kind == FieldKind.UNIT_PRICE:
        # Full precision is kept for quantity * price; the 2dp string is display only.
        return ParsedMoney(
            value=value,
            confidence=ParseConfidence.HIGH,
            normalized=normalized,
            was_normalized=was_normalized,
            display_2dp=str(value.quantize(_CENT, rounding=ROUND_HALF_UP)),
        )

    rounded = value.quantize(_CENT, rounding=ROUND_HALF_UP)
    return ParsedMoney(
        value=rounded,
        confidence=ParseConfidence.HIGH,
        cents=int(rounded * 100),
        normalized=str(rounded),
        was_normalized=was_normalized or rounded != value,
        display_2dp=str(rounded),
    )


def _parse_numeric(value: Decimal | int | float, kind: FieldKind, max_decimals: int) -> ParsedMoney:
    if isinstance(value, float):
        value = Decimal(repr(value))
    elif isinstance(value, int):
        value = Decimal(value)
    if not value.is_finite():
        return _invalid(False)
    normalized = format(value, "f")
    return _finalize(normalized, kind=kind, max_decimals=max_decimals, was_normalized=False)


def _strip_parentheses(raw: str) -> tuple[str, bool]:
    text = raw.strip()
    if len(text) >= 2 and text[0] == "(" and text[-1] == ")":
        inner = text[1:-1]
        if any(ch.isdigit() for ch in inner):
            return f"-{inner}", True
    return text, False


def _clean(raw: str) -> str:
    text = re.sub(r"[A-Za-z]", "", raw.strip())
    text = re.sub(r"[$€£¥]", "", text)
    text = re.sub(r"\s+", "", text)
    if text.startswith("-"):
        return "-" + text[1:].replace("-", "")
    return text.replace("-", "")


def parse_money(
    raw: str | Decimal | int | float | None,
    kind: FieldKind | str = FieldKind.OTHER,
    *,
    max_decimals: int | None = None,
) -> ParsedMoney:
    """
    Parse a money-like OCR string with field-kind aware separator rules.

    - Both separators present: the rightmost is the decimal separator, and the rest must be a
      well-formed thousands grouping (``1.234,56`` / ``1,234.56``).
    - A lone comma followed by 1-2 digits is a decimal comma; followed by 3 digits it is a
      thousands separator (``1,234`` -> 1234).
    - A lone dot followed by 3 digits is ambiguous for money fields but a valid price for
      ``UNIT_PRICE`` (up to 4 decimals).
    - ``(79,10)`` is a negative amount.
    """
    kind = FieldKind(kind)
    limit = _max_decimals(kind, max_decimals)

    if raw is None or isinstance(raw, bool):
        return _invalid(False)
    if isinstance(raw, (Decimal, int, float)):
        return _parse_numeric(raw, kind, limit)

    text, negated = _strip_parentheses(raw.replace("\u00a0", " "))
    cleaned = _clean(text)
    was_normalized = negated or cleaned != text

    if not _NUMERIC_CHARS_RE.match(cleaned) or not any(ch.isdigit() for ch in cleaned):
        return _invalid(was_normalized)

    has_dot = "." in cleaned
    has_comma = "," in cleaned

    if has_dot and has_comma:
        decimal_is_dot = cleaned.rfind(".") > cleaned.rfind(",")
        pattern = _US_MIXED_RE if decimal_is_dot else _EU_MIXED_RE
        if not pattern.match(cleaned):
            return _ambiguous(True)
        if decimal_is_dot:
            normalized = cleaned.replace(",", "")
        else:
            normalized = cleaned.replace(".", "").replace(",", ".")
        return _finalize(normalized, kind=kind, max_decimals=limit, was_normalized=True)

    if has_comma:
        parts = cleaned.split(",")
        if len(parts) > 2:
            if _COMMA_GROUPED_RE.match(cleaned):
                return _finalize(
                    cleaned.replace(",", ""), kind=kind, max_decimals=limit, was_normalized=True
                )
            return _ambiguous(True)

        lhs, rhs = parts
        if 1 <= len(rhs) <= 2:
            return _finalize(f"{lhs}.{rhs}", kind=kind, max_decimals=limit, was_normalized=True)
        if len(rhs) == 3 and 1 <= len(lhs.lstrip("-")) <= 3:
            return _finalize(f"{lhs}{rhs}", kind=kind, max_decimals=limit, was_normalized=True)
        return _ambiguous(True)

    if has_dot:
        parts = cleaned.split(".")
        if len(parts) != 2:
            return _invalid(was_normalized)
        rhs = parts[1]
        if len(rhs) in (3, 4):
            if kind == FieldKind.UNIT_PRICE:
                if len(rhs) == 3:
                    value = _to_decimal(cleaned)
                    if value is not None and abs(value) > UNIT_PRICE_DOT_3DP_MAX_REASONABLE:
                        return _ambiguous(was_normalized)
                return _finalize(cleaned, kind=kind, max_decimals=limit, was_normalized=was_normalized)
            if len(rhs) == 3:
                return _ambiguous(was_normalized)
            return _invalid(was_normalized)

    return _finalize(cleaned, kind=kind, max_decimals=limit, was_normalized=was_normalized)


def parse_quantity(raw: str | Decimal | int | float | None) -> Decimal | None:
    """Loose numeric read for quantity cells ("8.42 KILO", "2 x", "1,5")."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (Decimal, int, float)):
        value = Decimal(repr(raw)) if isinstance(raw, float) else Decimal(raw)
        return value if value.is_finite() else None

    match = re.search(r"-?\d+(?:[.,]\d+)?", raw.replace("\u00a0", " "))
    if not match:
        return None
    return _to_decimal(match.group(0).replace(",", "."))
