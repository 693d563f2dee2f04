from __future__ import annotations

import uuid
from decimal import Decimal

import pytest


@pytest.fixture
def completed(fake_provider, submit, expense_payload):
    """Run a document through OCR and return its enriched status."""
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.service import poll_document, start_ocr_job

    def _run(**payload_kwargs):
        document_id = submit(auto_approve_enabled=payload_kwargs.pop("auto_approve", False))
        start_ocr_job(document_id=document_id)
        fake_provider.succeed(fake_provider.started[-1]["job_id"], expense_payload(**payload_kwargs))
        with SessionLocal() as session:
            return poll_document(session, document_id=document_id)

    return _run


def _verify(invoice_id: uuid.UUID, edits=None):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.verification import verify_invoice

    with SessionLocal() as session:
        return verify_invoice(session, invoice_id=invoice_id, edits=edits)


def test_verify_without_edits_confirms_extraction(completed, notifier):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.canonical.models import AdjustmentStatus, CanonicalSource
    from invoice_intake.modules.canonical.service import get_canonical_invoice
    from invoice_intake.modules.documents.models import (
        ProcessingStatus,
        ReviewStatus,
        VerificationSource,
    )
    from invoice_intake.modules.suppliers.models import Supplier, SupplierStatus

    before = completed()
    status = _verify(before.invoice.id)

    assert status.processing_status == ProcessingStatus.OCR_COMPLETE
    assert status.review_status == ReviewStatus.VERIFIED
    assert status.verification_source == VerificationSource.MANUAL
    assert status.verified_at is not None
    assert status.invoice.is_verified is True
    assert notifier.names()[-1] == "invoice.verified"

    with SessionLocal() as session:
        canonical = get_canonical_invoice(session, before.invoice.id)
        assert canonical.source == CanonicalSource.MANUAL
        assert [line.source_line_ref for line in canonical.lines] == [
            str(line.id) for line in before.invoice.lines
        ]
        assert {line.adjustment_status for line in canonical.lines} == {AdjustmentStatus.NONE}
        supplier = session.get(Supplier, before.invoice.supplier_id)
        assert supplier.status == SupplierStatus.ACTIVE


def test_line_edits_mark_document_manually_updated(completed):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.canonical.models import AdjustmentStatus
    from invoice_intake.modules.canonical.service import get_canonical_invoice
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits, LineEdit

    before = completed()
    ribs, prosciutto = before.invoice.lines
    edits = InvoiceEdits(
        lines=[
            LineEdit(
                id=ribs.id,
                description=ribs.description,
                quantity=Decimal("12"),
                unit_label="KG",
                unit_price=Decimal("12.05"),
                line_total=Decimal("144.60"),
            ),
            LineEdit(id=prosciutto.id, description=prosciutto.description),
            LineEdit(description="Delivery fee", quantity=Decimal("1"), line_total=Decimal("15.00")),
        ]
    )

    status = _verify(before.invoice.id, edits)

    assert status.processing_status == ProcessingStatus.MANUALLY_UPDATED
    lines = status.invoice.lines
    assert [line.description for line in lines] == [
        "Frozen Brontosaurus Ribs",
        "Prosciutto di Parma",
        "Delivery fee",
    ]
    assert [line.position for line in lines] == [0, 1, 2]
    assert lines[0].quantity == Decimal("12")
    assert lines[0].raw_quantity_text is None
    assert lines[0].is_edited is True
    assert lines[1].is_edited is False
    assert lines[1].raw_line_total_text == "45.00"

    with SessionLocal() as session:
        canonical = get_canonical_invoice(session, before.invoice.id)
        assert canonical.line_count == 3
        assert [line.adjustment_status for line in canonical.lines] == [
            AdjustmentStatus.MODIFIED,
            AdjustmentStatus.NONE,
            AdjustmentStatus.MODIFIED,
        ]
        assert canonical.lines[0].line_total == Decimal("144.60")


def test_non_numeric_edit_keeps_ambiguous_ocr_text(completed):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.canonical.models import QualityStatus
    from invoice_intake.modules.canonical.service import get_canonical_invoice
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits, LineEdit

    before = completed(
        lines=[
            ("Frozen Brontosaurus Ribs", "10 KG", "12.05", "120.50"),
            ("Prosciutto di Parma", "1", "1.234", "1.234"),
        ]
    )
    ribs, prosciutto = before.invoice.lines
    assert prosciutto.line_total is None
    assert before.quality.warning_line_count == 1

    status = _verify(
        before.invoice.id,
        InvoiceEdits(
            lines=[
                LineEdit(id=ribs.id, description=ribs.description),
                LineEdit(id=prosciutto.id, description=prosciutto.description, product_code="PRS-01"),
            ]
        ),
    )
    edited = status.invoice.lines[1]
    assert edited.is_edited is True
    assert edited.product_code == "PRS-01"
    assert edited.raw_line_total_text == "1.234"
    assert status.quality.warning_line_count == 1
    with SessionLocal() as session:
        canonical = get_canonical_invoice(session, before.invoice.id)
        assert canonical.lines[1].quality_status == QualityStatus.WARN
        assert canonical.lines[1].line_total is None

    status = _verify(
        before.invoice.id,
        InvoiceEdits(
            lines=[
                LineEdit(id=ribs.id, description=ribs.description),
                LineEdit(
                    id=prosciutto.id,
                    description=prosciutto.description,
                    product_code="PRS-01",
                    line_total=Decimal("1.23"),
                ),
            ]
        ),
    )
    edited = status.invoice.lines[1]
    assert edited.raw_line_total_text is None
    assert edited.raw_unit_price_text == "1.234"
    assert edited.line_total == Decimal("1.23")


def test_omitted_lines_are_removed(completed):
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits, LineEdit

    before = completed()
    keep = before.invoice.lines[1]
    status = _verify(
        before.invoice.id, InvoiceEdits(lines=[LineEdit(id=keep.id, description=keep.description)])
    )

    assert [line.id for line in status.invoice.lines] == [keep.id]
    assert status.invoice.lines[0].position == 0
    assert status.quality.line_count == 1


def test_header_edit_normalizes_currency(completed):
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits

    before = completed()
    status = _verify(before.invoice.id, InvoiceEdits(currency=" nzd ", total=Decimal("170.00")))

    assert status.processing_status == ProcessingStatus.MANUALLY_UPDATED
    assert status.invoice.currency == "NZD"
    assert status.invoice.total == Decimal("170.00")
    assert status.invoice.invoice_number == "INV-1001"


def test_unchanged_values_are_not_edits(completed):
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits

    before = completed()
    status = _verify(before.invoice.id, InvoiceEdits(invoice_number="INV-1001", currency="AUD"))
    assert status.processing_status == ProcessingStatus.OCR_COMPLETE


def test_supplier_correction_learns_alias(completed, active_supplier, organisation_id):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits
    from invoice_intake.modules.suppliers.service import SupplierMatchType, resolve_supplier

    supplier_id = active_supplier("Fresh Produce Company Pty Ltd")
    before = completed()
    assert before.invoice.supplier_id != supplier_id

    status = _verify(before.invoice.id, InvoiceEdits(supplier_id=supplier_id))
    assert status.invoice.supplier_id == supplier_id
    assert status.invoice.supplier_name == "Fresh Produce Company Pty Ltd"

    with SessionLocal() as session:
        resolution = resolve_supplier(session, organisation_id=organisation_id, name="FRESH PRODUCE CO")
        assert resolution.supplier_id == supplier_id
        assert resolution.match_type == SupplierMatchType.ALIAS

    # The next invoice from the same vendor resolves through the alias.
    after = completed(invoice_number="INV-1002")
    assert after.invoice.supplier_id == supplier_id


def test_supplier_name_edit_creates_active_supplier(completed):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits
    from invoice_intake.modules.suppliers.models import Supplier, SupplierSource, SupplierStatus

    before = completed()
    status = _verify(before.invoice.id, InvoiceEdits(supplier_name="Harbour Seafoods"))

    with SessionLocal() as session:
        supplier = session.get(Supplier, status.invoice.supplier_id)
        assert supplier.name == "Harbour Seafoods"
        assert supplier.status == SupplierStatus.ACTIVE
        assert supplier.source == SupplierSource.MANUAL


def test_manual_verification_overrides_auto_approval(completed, active_supplier):
    from invoice_intake.modules.documents.models import ReviewStatus, VerificationSource
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits

    active_supplier("Fresh Produce Co")
    before = completed(auto_approve=True)
    assert before.verification_source == VerificationSource.AUTO

    status = _verify(before.invoice.id, InvoiceEdits(invoice_number="INV-1001-A"))
    assert status.review_status == ReviewStatus.VERIFIED
    assert status.verification_source == VerificationSource.MANUAL
    assert status.invoice.invoice_number == "INV-1001-A"


def test_verification_requires_completed_ocr(completed):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.errors import InvalidTransitionError
    from invoice_intake.modules.pipeline.service import retry_document, soft_delete_document

    before = completed()
    with SessionLocal() as session:
        retry_document(session, document_id=before.id)
    with pytest.raises(InvalidTransitionError):
        _verify(before.invoice.id)

    other = completed(invoice_number="INV-2000")
    with SessionLocal() as session:
        soft_delete_document(session, document_id=other.id)
    with pytest.raises(InvalidTransitionError):
        _verify(other.invoice.id)


def test_unknown_line_id_is_rejected(completed):
    from invoice_intake.modules.pipeline.errors import InputValidationError, InvoiceNotFoundError
    from invoice_intake.modules.pipeline.schemas import InvoiceEdits, LineEdit

    before = completed()
    with pytest.raises(InputValidationError):
        _verify(before.invoice.id, InvoiceEdits(lines=[LineEdit(id=uuid.uuid4(), description="x")]))
    with pytest.raises(InvoiceNotFoundError):
        _verify(uuid.uuid4())
