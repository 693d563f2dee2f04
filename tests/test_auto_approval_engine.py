from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

from invoice_intake.modules.approval.engine import (
    AutoApprovalInputs,
    AutoApprovalReason,
    decide_auto_approval,
)
from invoice_intake.modules.documents.models import ProcessingStatus, ReviewStatus
from invoice_intake.modules.suppliers.models import SupplierStatus


def _eligible() -> AutoApprovalInputs:
    return AutoApprovalInputs(
        location_auto_approve_enabled=True,
        processing_status=ProcessingStatus.OCR_COMPLETE,
        review_status=ReviewStatus.NEEDS_REVIEW,
        confidence_score=97.5,
        invoice_is_verified=False,
        invoice_total=Decimal("165.50"),
        supplier_status=SupplierStatus.ACTIVE,
        line_count=2,
        warning_line_count=0,
        invoice_date=date(2026, 3, 1),
    )


def test_all_gates_pass():
    decision = decide_auto_approval(_eligible())
    assert decision.eligible
    assert decision.reason is None


def test_each_gate_names_its_reason():
    cases = [
        ({"location_auto_approve_enabled": False}, AutoApprovalReason.FEATURE_DISABLED),
        ({"review_status": ReviewStatus.VERIFIED}, AutoApprovalReason.ALREADY_VERIFIED),
        ({"review_status": ReviewStatus.NONE}, AutoApprovalReason.NOT_REVIEWABLE),
        ({"invoice_is_verified": True}, AutoApprovalReason.ALREADY_VERIFIED),
        ({"has_manual_edits": True}, AutoApprovalReason.HAS_MANUAL_EDITS),
        ({"processing_status": ProcessingStatus.MANUALLY_UPDATED}, AutoApprovalReason.HAS_MANUAL_EDITS),
        ({"processing_status": ProcessingStatus.OCR_PROCESSING}, AutoApprovalReason.NOT_OCR_COMPLETE),
        ({"supplier_status": None}, AutoApprovalReason.NO_SUPPLIER),
        ({"supplier_status": SupplierStatus.PENDING_REVIEW}, AutoApprovalReason.SUPPLIER_NOT_ACTIVE),
        ({"line_count": None, "warning_line_count": None}, AutoApprovalReason.NO_QUALITY_DATA),
        ({"line_count": 0}, AutoApprovalReason.NO_LINE_ITEMS),
        ({"warning_line_count": 1}, AutoApprovalReason.HAS_EXCLUDED_LINES),
        ({"confidence_score": 89.9}, AutoApprovalReason.LOW_CONFIDENCE),
        ({"confidence_score": None}, AutoApprovalReason.LOW_CONFIDENCE),
        ({"invoice_date": None}, AutoApprovalReason.MISSING_INVOICE_DATE),
        ({"invoice_total": None}, AutoApprovalReason.MISSING_TOTAL),
        ({"invoice_total": Decimal("-12.00")}, AutoApprovalReason.NEGATIVE_TOTAL),
    ]
    for changes, reason in cases:
        decision = decide_auto_approval(replace(_eligible(), **changes))
        assert not decision.eligible, changes
        assert decision.reason == reason, changes


def test_first_failing_gate_wins():
    inputs = replace(
        _eligible(),
        location_auto_approve_enabled=False,
        supplier_status=None,
        confidence_score=5.0,
    )
    assert decide_auto_approval(inputs).reason == AutoApprovalReason.FEATURE_DISABLED

    inputs = replace(_eligible(), warning_line_count=3, confidence_score=5.0)
    assert decide_auto_approval(inputs).reason == AutoApprovalReason.HAS_EXCLUDED_LINES


def test_threshold_is_inclusive_and_configurable():
    inputs = replace(_eligible(), confidence_score=90.0)
    assert decide_auto_approval(inputs).eligible
    assert not decide_auto_approval(inputs, confidence_threshold=95.0).eligible


def test_zero_total_is_allowed():
    assert decide_auto_approval(replace(_eligible(), invoice_total=Decimal("0"))).eligible


def test_undated_invoice_is_checked_after_confidence_and_before_total():
    inputs = replace(_eligible(), invoice_date=None, invoice_total=None)
    assert decide_auto_approval(inputs).reason == AutoApprovalReason.MISSING_INVOICE_DATE

    inputs = replace(_eligible(), invoice_date=None, confidence_score=10.0)
    assert decide_auto_approval(inputs).reason == AutoApprovalReason.LOW_CONFIDENCE
