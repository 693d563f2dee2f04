from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.core.models import utcnow
from invoice_intake.modules.canonical.models import CanonicalSource
from invoice_intake.modules.canonical.service import normalize_currency, replace_canonical_invoice
from invoice_intake.modules.canonical.spellcheck import get_spellchecker
from invoice_intake.modules.documents.models import (
    DocumentArtifact,
    ProcessingStatus,
    ReviewStatus,
    VerificationSource,
)
from invoice_intake.modules.extraction.models import DocumentOcrResult
from invoice_intake.modules.invoices.models import Invoice, InvoiceLineItem
from invoice_intake.modules.pipeline.errors import (
    InputValidationError,
    InvalidTransitionError,
    InvoiceNotFoundError,
)
from invoice_intake.modules.pipeline.guard import StateSnapshot, compare_and_set
from invoice_intake.modules.pipeline.schemas import EnrichedStatus, InvoiceEdits, LineEdit
from invoice_intake.modules.pipeline.service import enrich_status, notify_document
from invoice_intake.modules.suppliers.models import Supplier, SupplierSource, SupplierStatus
from invoice_intake.modules.suppliers.service import (
    create_alias,
    find_supplier,
    normalize_supplier_name,
    set_supplier_status,
)

logger = get_logger(__name__)

_HEADER_FIELDS = ("invoice_number", "invoice_date", "currency", "subtotal", "tax", "total")
_LINE_FIELDS = ("description", "product_code", "quantity", "unit_label", "unit_price", "line_total")
_RAW_TEXT_FIELDS = {
    "quantity": "raw_quantity_text",
    "unit_price": "raw_unit_price_text",
    "line_total": "raw_line_total_text",
}
_VERIFIABLE = (ProcessingStatus.OCR_COMPLETE, ProcessingStatus.MANUALLY_UPDATED)


def get_invoice(
    session: Session, *, invoice_id: uuid.UUID, organisation_id: uuid.UUID | None = None
) -> Invoice:
    invoice = session.get(Invoice, invoice_id)
    if invoice is None or (organisation_id is not None and invoice.organisation_id != organisation_id):
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _ocr_supplier_name(session: Session, document_id: uuid.UUID) -> str | None:
    record = session.scalar(
        select(DocumentOcrResult).where(DocumentOcrResult.document_id == document_id)
    )
    if record is None:
        return None
    return (record.parsed_payload or {}).get("supplier_name") or None


def _chosen_supplier(session: Session, invoice: Invoice, edits: InvoiceEdits) -> Supplier | None:
    if edits.supplier_id is not None:
        supplier = session.get(Supplier, edits.supplier_id)
        if supplier is None or supplier.organisation_id != invoice.organisation_id:
            raise InputValidationError(f"Unknown supplier {edits.supplier_id}")
        return supplier

    name = (edits.supplier_name or "").strip()
    if not normalize_supplier_name(name):
        raise InputValidationError("Supplier name is empty")
    found = find_supplier(session, organisation_id=invoice.organisation_id, name=name)
    if found is not None:
        return found.supplier
    supplier = Supplier(
        organisation_id=invoice.organisation_id,
        name=name[:300],
        normalized_name=normalize_supplier_name(name),
        status=SupplierStatus.ACTIVE,
        source=SupplierSource.MANUAL,
    )
    session.add(supplier)
    session.flush()
    log_event(logger, "supplier.manual.created", supplier_id=str(supplier.id))
    return supplier


def _apply_supplier(session: Session, invoice: Invoice, edits: InvoiceEdits) -> bool:
    if edits.supplier_id is None and not (edits.supplier_name or "").strip():
        if invoice.supplier is not None and invoice.supplier.status == SupplierStatus.PENDING_REVIEW:
            # Verifying an invoice confirms the supplier it was read against.
            set_supplier_status(session, supplier=invoice.supplier, status=SupplierStatus.ACTIVE)
        return False

    supplier = _chosen_supplier(session, invoice, edits)
    if supplier.status == SupplierStatus.PENDING_REVIEW:
        set_supplier_status(session, supplier=supplier, status=SupplierStatus.ACTIVE)
    if supplier.id == invoice.supplier_id:
        return False

    ocr_name = _ocr_supplier_name(session, invoice.document_id)
    if ocr_name and normalize_supplier_name(ocr_name) != supplier.normalized_name:
        create_alias(
            session,
            organisation_id=invoice.organisation_id,
            supplier_id=supplier.id,
            alias_name=ocr_name,
        )
        log_event(
            logger,
            "supplier.alias.learned",
            supplier_id=str(supplier.id),
            alias=ocr_name[:50],
        )
    invoice.supplier = supplier
    return True


def _normalized(field_name: str, value: Any) -> Any:
    if field_name == "currency":
        return normalize_currency(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


def _apply_header(invoice: Invoice, edits: InvoiceEdits) -> bool:
    changed = False
    for name in _HEADER_FIELDS:
        if name not in edits.model_fields_set:
            continue
        value = _normalized(name, getattr(edits, name))
        if getattr(invoice, name) != value:
            setattr(invoice, name, value)
            changed = True
    return changed


def _same_number(a: Decimal | None, b: Decimal | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return Decimal(a) == Decimal(b)


def _line_changed(line: InvoiceLineItem, edit: LineEdit) -> bool:
    for name in _LINE_FIELDS:
        if name not in edit.model_fields_set:
            continue
        new = getattr(edit, name)
        old = getattr(line, name)
        if name in ("quantity", "unit_price", "line_total"):
            if not _same_number(old, new):
                return True
        elif (old or None) != (new or None):
            return True
    return False


def _write_line(line: InvoiceLineItem, edit: LineEdit) -> None:
    for name in _LINE_FIELDS:
        if name not in edit.model_fields_set:
            continue
        new = getattr(edit, name)
        if name in _RAW_TEXT_FIELDS:
            # A typed number replaces its OCR text; untouched numbers keep theirs for re-parsing.
            if not _same_number(getattr(line, name), new):
                setattr(line, _RAW_TEXT_FIELDS[name], None)
        setattr(line, name, new if name != "description" else (edit.description or ""))
    line.is_edited = True


def _apply_lines(session: Session, invoice: Invoice, edits: InvoiceEdits) -> bool:
    if edits.lines is None:
        return False

    existing = {line.id: line for line in invoice.lines}
    kept: list[InvoiceLineItem] = []
    changed = False
    for edit in edits.lines:
        if edit.id is not None:
            line = existing.pop(edit.id, None)
            if line is None:
                raise InputValidationError(f"Line {edit.id} does not belong to invoice {invoice.id}")
            if _line_changed(line, edit):
                _write_line(line, edit)
                changed = True
        else:
            line = InvoiceLineItem(description=edit.description or "")
            _write_line(line, edit)
            changed = True
        kept.append(line)

    if existing:
        changed = True
    for idx, line in enumerate(kept):
        if line.position != idx:
            line.position = idx
    invoice.lines[:] = kept
    session.flush()
    return changed


def verify_invoice(
    session: Session,
    *,
    invoice_id: uuid.UUID,
    edits: InvoiceEdits | None = None,
    organisation_id: uuid.UUID | None = None,
) -> EnrichedStatus:
    """
    Manual verification. Always wins over automated state, including an earlier AUTO approval.

    Any effective edit moves the document to MANUALLY_UPDATED; canonical rows are rebuilt from the
    edited invoice with source MANUAL in the same transaction.
    """
    edits = edits or InvoiceEdits()
    invoice = get_invoice(session, invoice_id=invoice_id, organisation_id=organisation_id)
    document: DocumentArtifact = invoice.document
    if document.is_deleted or invoice.is_deleted:
        raise InvalidTransitionError("Deleted invoices cannot be verified")
    if document.processing_status not in _VERIFIABLE:
        raise InvalidTransitionError(
            f"Document in {document.processing_status.value} cannot be verified"
        )

    snapshot = StateSnapshot.of(document)
    supplier_changed = _apply_supplier(session, invoice, edits)
    header_changed = _apply_header(invoice, edits)
    lines_changed = _apply_lines(session, invoice, edits)
    has_edits = supplier_changed or header_changed or lines_changed

    now = utcnow()
    values: dict[str, Any] = {
        "review_status": ReviewStatus.VERIFIED,
        "verification_source": VerificationSource.MANUAL,
        "verified_at": now,
    }
    if has_edits:
        values["processing_status"] = ProcessingStatus.MANUALLY_UPDATED
    session.flush()
    if not compare_and_set(session, document, snapshot, **values):
        session.rollback()
        raise InvalidTransitionError("Document changed during verification; reload and try again")

    invoice.is_verified = True
    invoice.verified_at = now
    replace_canonical_invoice(
        session, invoice, source=CanonicalSource.MANUAL, spellchecker=get_spellchecker()
    )
    session.commit()
    session.refresh(document)

    log_event(
        logger,
        "invoice.verified",
        invoice_id=str(invoice.id),
        document_id=str(document.id),
        has_edits=has_edits,
        supplier_changed=supplier_changed,
        lines_changed=lines_changed,
    )
    notify_document(document, "invoice.verified", invoice_id=str(invoice.id))
    return enrich_status(session, document)
