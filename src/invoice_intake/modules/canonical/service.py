from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.modules.canonical.models import (
    AdjustmentStatus,
    CanonicalInvoice,
    CanonicalLineItem,
    CanonicalSource,
    QualityStatus,
)
from invoice_intake.modules.canonical.money import (
    FieldKind,
    ParsedMoney,
    ParseFailureReason,
    parse_money,
    parse_quantity,
)
from invoice_intake.modules.canonical.spellcheck import SpellChecker
from invoice_intake.modules.canonical.text_quality import compute_description_warnings
from invoice_intake.modules.canonical.units import (
    UnitCategory,
    canonicalize_unit_label,
    extract_unit_from_quantity,
    unit_category,
)
from invoice_intake.modules.invoices.models import Invoice, InvoiceLineItem

logger = get_logger(__name__)

FAILED_NUMERIC_PARSE = "FAILED_NUMERIC_PARSE"

_PARSE_REASON_CODES = {
    ParseFailureReason.AMBIGUOUS_DECIMAL_SEPARATOR: "AMBIGUOUS_DECIMAL_SEPARATOR",
    ParseFailureReason.INVALID_FORMAT: "INVALID_MONEY_FORMAT",
}
_LIGHT_PUNCT_RE = re.compile(r"[.,;:(){}\[\]<>|]")


@dataclass(frozen=True)
class LineInput:
    source_line_ref: str
    description: str | None
    product_code: str | None = None
    quantity: str | Decimal | None = None
    unit_label: str | None = None
    unit_price: str | Decimal | None = None
    line_total: str | Decimal | None = None
    currency: str | None = None
    header_currency: str | None = None
    is_edited: bool = False
    confidence_score: float | None = None


@dataclass(frozen=True)
class CanonicalLine:
    source_line_ref: str
    raw_description: str
    normalized_description: str
    product_code: str | None
    unit_label: str | None
    unit_category: UnitCategory
    quantity: Decimal | None
    unit_price: Decimal | None
    line_total: Decimal | None
    currency: str | None
    adjustment_status: AdjustmentStatus
    quality_status: QualityStatus
    warn_reasons: list[str] = field(default_factory=list)
    confidence_score: float | None = None


@dataclass(frozen=True)
class QualitySummary:
    line_count: int
    warning_line_count: int

    @property
    def has_excluded_lines(self) -> bool:
        return self.warning_line_count > 0


def normalize_description(raw: str | None) -> str:
    text = " ".join((raw or "").strip().lower().split())
    return _LIGHT_PUNCT_RE.sub("", text).strip()


def normalize_currency(code: str | None) -> str | None:
    value = (code or "").strip().upper()
    if not re.fullmatch(r"[A-Z]{3}", value):
        return None
    return value


def _has_text(value: str | Decimal | None) -> bool:
    if value is None:
        return False
    return not isinstance(value, str) or bool(value.strip())


def _numeric_warnings(*parsed: ParsedMoney | None) -> list[str]:
    reasons: list[str] = []
    for result in parsed:
        if result is None or result.reason is None:
            continue
        reasons.append(FAILED_NUMERIC_PARSE)
        reasons.append(_PARSE_REASON_CODES[result.reason])
    return reasons


def canonicalize_line(line: LineInput, *, spellchecker: SpellChecker | None = None) -> CanonicalLine:
    """
    Normalize one raw line and classify it OK / WARN.

    WARN comes only from description heuristics or a money field the parser could not read
    unambiguously. Reasons are recomputed from scratch on every call.
    """
    raw_description = (line.description or "").strip()

    price = parse_money(line.unit_price, FieldKind.UNIT_PRICE) if _has_text(line.unit_price) else None
    total = parse_money(line.line_total, FieldKind.LINE_TOTAL) if _has_text(line.line_total) else None

    unit_label = line.unit_label
    if not unit_label and isinstance(line.quantity, str):
        unit_label = extract_unit_from_quantity(line.quantity)
    unit_label = canonicalize_unit_label(unit_label, description=raw_description)

    reasons = _numeric_warnings(price, total)
    reasons.extend(w.value for w in compute_description_warnings(raw_description, spellchecker=spellchecker))
    reasons = list(dict.fromkeys(reasons))

    return CanonicalLine(
        source_line_ref=line.source_line_ref,
        raw_description=raw_description,
        normalized_description=normalize_description(raw_description),
        product_code=(line.product_code or "").strip() or None,
        unit_label=unit_label,
        unit_category=unit_category(unit_label),
        quantity=parse_quantity(line.quantity),
        unit_price=price.value if price else None,
        line_total=total.value if total else None,
        currency=normalize_currency(line.currency) or normalize_currency(line.header_currency),
        adjustment_status=AdjustmentStatus.MODIFIED if line.is_edited else AdjustmentStatus.NONE,
        quality_status=QualityStatus.WARN if reasons else QualityStatus.OK,
        warn_reasons=reasons,
        confidence_score=line.confidence_score,
    )


def source_line_ref(line: InvoiceLineItem, idx: int, source: CanonicalSource) -> str:
    # OCR output has no stable id until it is stored, so OCR rows point at their position.
    if source == CanonicalSource.MANUAL and line.id is not None:
        return str(line.id)
    return f"line:{idx}"


def line_input_from_legacy(
    line: InvoiceLineItem, *, idx: int, source: CanonicalSource, header_currency: str | None
) -> LineInput:
    return LineInput(
        source_line_ref=source_line_ref(line, idx, source),
        description=line.description,
        product_code=line.product_code,
        quantity=line.raw_quantity_text if line.raw_quantity_text is not None else line.quantity,
        unit_label=line.unit_label,
        unit_price=line.raw_unit_price_text if line.raw_unit_price_text is not None else line.unit_price,
        line_total=line.raw_line_total_text if line.raw_line_total_text is not None else line.line_total,
        header_currency=header_currency,
        is_edited=line.is_edited,
        confidence_score=line.confidence_score,
    )


def get_canonical_invoice(session: Session, invoice_id: uuid.UUID) -> CanonicalInvoice | None:
    return session.scalar(select(CanonicalInvoice).where(CanonicalInvoice.invoice_id == invoice_id))


def replace_canonical_invoice(
    session: Session,
    invoice: Invoice,
    *,
    source: CanonicalSource,
    spellchecker: SpellChecker | None = None,
) -> CanonicalInvoice:
    """Delete and recreate the canonical rows for an invoice. The caller owns the commit."""
    existing = get_canonical_invoice(session, invoice.id)
    if existing is not None:
        session.delete(existing)
        session.flush()

    canonical = CanonicalInvoice(
        organisation_id=invoice.organisation_id,
        location_id=invoice.location_id,
        invoice_id=invoice.id,
        supplier_id=invoice.supplier_id,
        source=source,
        invoice_date=invoice.invoice_date,
        currency=normalize_currency(invoice.currency),
        total=invoice.total,
    )
    warning_count = 0
    for idx, legacy in enumerate(invoice.lines):
        result = canonicalize_line(
            line_input_from_legacy(legacy, idx=idx, source=source, header_currency=invoice.currency),
            spellchecker=spellchecker,
        )
        if result.quality_status == QualityStatus.WARN:
            warning_count += 1
        canonical.lines.append(
            CanonicalLineItem(
                position=idx,
                source_line_ref=result.source_line_ref,
                raw_description=result.raw_description,
                normalized_description=result.normalized_description,
                product_code=result.product_code,
                unit_label=result.unit_label,
                unit_category=result.unit_category,
                quantity=result.quantity,
                unit_price=result.unit_price,
                line_total=result.line_total,
                currency=result.currency,
                confidence_score=result.confidence_score,
                quality_status=result.quality_status,
                warn_reasons=list(result.warn_reasons),
                adjustment_status=result.adjustment_status,
            )
        )
    canonical.line_count = len(canonical.lines)
    canonical.warning_line_count = warning_count
    session.add(canonical)
    session.flush()

    log_event(
        logger,
        "canonical.invoice.replaced",
        invoice_id=str(invoice.id),
        source=source.value,
        line_count=canonical.line_count,
        warning_line_count=warning_count,
    )
    return canonical


def summarize_quality(canonical: CanonicalInvoice | None) -> QualitySummary | None:
    if canonical is None:
        return None
    return QualitySummary(
        line_count=canonical.line_count, warning_line_count=canonical.warning_line_count
    )
