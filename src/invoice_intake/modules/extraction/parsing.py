from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from invoice_intake.modules.canonical.money import FieldKind, parse_money, parse_quantity

UNIT_ALLOW = frozenset(
    {
        "KG", "KILO", "KILOS", "KILOGRAM", "KILOGRAMS", "G", "GM", "GRAM", "GRAMS", "GR",
        "L", "LT", "LITRE", "LITRES", "LITER", "LITERS",
        "ML", "MILLILITRE", "MILLILITRES", "MILLILITER", "MILLILITERS",
        "UNIT", "UNITS", "EA", "EACH", "BOX", "CARTON", "CRTN", "CTN",
        "PACK", "PK", "BAG", "TRAY", "TUB", "ROLL", "BOTTLE",
    }
)  # fmt: skip

_UNIT_TOKEN_RE = re.compile(r"^\s*\d+(?:\.\d+)?\s*([A-Za-z]{1,10})\s*$")


@dataclass(frozen=True)
class ParsedLine:
    description: str
    product_code: str | None = None
    raw_quantity_text: str | None = None
    quantity: Decimal | None = None
    unit_label: str | None = None
    raw_unit_price_text: str | None = None
    raw_line_total_text: str | None = None
    confidence: float | None = None


@dataclass(frozen=True)
class ParsedInvoice:
    supplier_name: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    currency: str | None = None
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    confidence: float = 0.0
    word_count: int = 0
    lines: list[ParsedLine] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        def _s(value: Any) -> Any:
            if isinstance(value, (Decimal, date)):
                return str(value)
            return value

        return {
            "supplier_name": self.supplier_name,
            "invoice_number": self.invoice_number,
            "invoice_date": _s(self.invoice_date),
            "currency": self.currency,
            "subtotal": _s(self.subtotal),
            "tax": _s(self.tax),
            "total": _s(self.total),
            "confidence": self.confidence,
            "word_count": self.word_count,
            "lines": [
                {
                    "description": line.description,
                    "product_code": line.product_code,
                    "raw_quantity_text": line.raw_quantity_text,
                    "quantity": _s(line.quantity),
                    "unit_label": line.unit_label,
                    "raw_unit_price_text": line.raw_unit_price_text,
                    "raw_line_total_text": line.raw_line_total_text,
                    "confidence": line.confidence,
                }
                for line in self.lines
            ],
        }


def _field_type(f: dict[str, Any]) -> str | None:
    return ((f.get("Type") or {}).get("Text") or "").upper() or None


def _value_text(f: dict[str, Any] | None) -> str:
    if not f:
        return ""
    return ((f.get("ValueDetection") or {}).get("Text") or "").strip()


def _value_confidence(f: dict[str, Any] | None) -> float | None:
    if not f:
        return None
    conf = (f.get("ValueDetection") or {}).get("Confidence")
    return float(conf) if isinstance(conf, (int, float)) else None


def _find(fields: list[dict[str, Any]], *types: str) -> dict[str, Any] | None:
    for wanted in types:
        for f in fields:
            if _field_type(f) == wanted:
                return f
    return None


def extract_unit_label(text: str | None) -> str | None:
    if not text:
        return None
    m = _UNIT_TOKEN_RE.match(text)
    if not m:
        return None
    token = m.group(1).upper()
    return token if token in UNIT_ALLOW else None


def parse_invoice_date(raw: str | None) -> date | None:
    if not raw:
        return None
    text = raw.strip()
    for fmt in ("%Y-%m-%d", "%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y", "%d-%b-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    m = re.fullmatch(r"([0-9]{1,2})[/.-]([0-9]{1,2})[/.-]([0-9]{2,4})", text)
    if not m:
        return None
    a, b, y = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if y < 100:
        y += 2000
    # Day-first unless that cannot be a date.
    for day, month in ((a, b), (b, a)):
        try:
            return date(y, month, day)
        except ValueError:
            continue
    return None


def _money(text: str, kind: FieldKind) -> Decimal | None:
    if not text:
        return None
    return parse_money(text, kind).value


def _line_confidence(*confidences: float | None) -> float | None:
    # confidences[0] is the description, weighted twice.
    values = [c for c in (confidences[0], *confidences) if c is not None and c > 0]
    if len(values) < 2:
        return None
    return sum(values) / len(values)


def count_words(document: dict[str, Any]) -> int:
    blocks = document.get("Blocks") or []
    words = [b for b in blocks if b.get("BlockType") == "WORD"]
    if words:
        return len(words)

    total = 0
    for f in document.get("SummaryFields") or []:
        total += len(_value_text(f).split())
        total += len(((f.get("LabelDetection") or {}).get("Text") or "").split())
    for group in document.get("LineItemGroups") or []:
        for item in group.get("LineItems") or []:
            for f in item.get("LineItemExpenseFields") or []:
                total += len(_value_text(f).split())
    return total


def parse_expense_payload(payload: dict[str, Any]) -> ParsedInvoice:
    """Typed view of a Textract expense-analysis response. Only the first document is read."""
    documents = payload.get("ExpenseDocuments") or []
    if not documents:
        return ParsedInvoice()
    doc = documents[0]
    summary = doc.get("SummaryFields") or []

    currency = None
    for f in summary:
        code = ((f.get("Currency") or {}).get("Code") or "").strip().upper()
        if code:
            currency = code
            break

    confidences = [_value_confidence(f) or 0.0 for f in summary]
    confidence = sum(confidences) / len(confidences) if confidences else 0.0

    lines: list[ParsedLine] = []
    for group in doc.get("LineItemGroups") or []:
        for item in group.get("LineItems") or []:
            fields = item.get("LineItemExpenseFields") or []
            desc_field = _find(fields, "ITEM", "EXPENSE_ROW")
            description = _value_text(desc_field)
            if not description:
                continue
            qty_field = _find(fields, "QUANTITY")
            price_field = _find(fields, "UNIT_PRICE")
            total_field = _find(fields, "PRICE")
            code_field = _find(fields, "PRODUCT_CODE")
            qty_text = _value_text(qty_field) or None
            lines.append(
                ParsedLine(
                    description=description,
                    product_code=_value_text(code_field) or None,
                    raw_quantity_text=qty_text,
                    quantity=parse_quantity(qty_text),
                    unit_label=extract_unit_label(qty_text),
                    raw_unit_price_text=_value_text(price_field) or None,
                    raw_line_total_text=_value_text(total_field) or None,
                    confidence=_line_confidence(
                        _value_confidence(desc_field),
                        _value_confidence(qty_field),
                        _value_confidence(price_field),
                        _value_confidence(total_field),
                        _value_confidence(code_field),
                    ),
                )
            )

    return ParsedInvoice(
        supplier_name=_value_text(_find(summary, "VENDOR_NAME")) or None,
        invoice_number=_value_text(_find(summary, "INVOICE_RECEIPT_ID")) or None,
        invoice_date=parse_invoice_date(_value_text(_find(summary, "INVOICE_RECEIPT_DATE"))),
        currency=currency,
        subtotal=_money(_value_text(_find(summary, "SUBTOTAL")), FieldKind.OTHER),
        tax=_money(_value_text(_find(summary, "TAX")), FieldKind.TAX),
        total=_money(_value_text(_find(summary, "TOTAL")), FieldKind.OTHER),
        confidence=round(confidence, 2),
        word_count=count_words(doc),
        lines=lines,
    )
