from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from invoice_intake.modules.documents.models import ProcessingStatus, ReviewStatus
from invoice_intake.modules.suppliers.models import SupplierStatus

HIGH_CONFIDENCE_THRESHOLD = 90.0


class AutoApprovalReason(str, enum.Enum):
    FEATURE_DISABLED = "FEATURE_DISABLED"
    ALREADY_VERIFIED = "ALREADY_VERIFIED"
    NOT_REVIEWABLE = "NOT_REVIEWABLE"
    HAS_MANUAL_EDITS = "HAS_MANUAL_EDITS"
    NOT_OCR_COMPLETE = "NOT_OCR_COMPLETE"
    NO_SUPPLIER = "NO_SUPPLIER"
    SUPPLIER_NOT_ACTIVE = "SUPPLIER_NOT_ACTIVE"
    NO_QUALITY_DATA = "NO_QUALITY_DATA"
    NO_LINE_ITEMS = "NO_LINE_ITEMS"
    HAS_EXCLUDED_LINES = "HAS_EXCLUDED_LINES"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    MISSING_INVOICE_DATE = "MISSING_INVOICE_DATE"
    MISSING_TOTAL = "MISSING_TOTAL"
    NEGATIVE_TOTAL = "NEGATIVE_TOTAL"


@dataclass(frozen=True)
class AutoApprovalInputs:
    location_auto_approve_enabled: bool
    processing_status: ProcessingStatus
    review_status: ReviewStatus
    confidence_score: float | None
    invoice_is_verified: bool
    invoice_total: Decimal | None
    supplier_status: SupplierStatus | None
    line_count: int | None
    warning_line_count: int | None
    has_manual_edits: bool = False
    invoice_date: date | None = None


@dataclass(frozen=True)
class AutoApprovalDecision:
    eligible: bool
    reason: AutoApprovalReason | None = None

    @classmethod
    def approve(cls) -> AutoApprovalDecision:
        return cls(eligible=True)

    @classmethod
    def reject(cls, reason: AutoApprovalReason) -> AutoApprovalDecision:
        return cls(eligible=False, reason=reason)


def decide_auto_approval(
    inputs: AutoApprovalInputs, *, confidence_threshold: float = HIGH_CONFIDENCE_THRESHOLD
) -> AutoApprovalDecision:
    """
    Ordered, short-circuiting eligibility gates. The first failing gate names the reason.

    Pure: no I/O, safe to call repeatedly. ``line_count``/``warning_line_count`` of ``None``
    means no canonical quality data exists for the invoice.
    """
    if not inputs.location_auto_approve_enabled:
        return AutoApprovalDecision.reject(AutoApprovalReason.FEATURE_DISABLED)

    if inputs.review_status == ReviewStatus.VERIFIED or inputs.invoice_is_verified:
        return AutoApprovalDecision.reject(AutoApprovalReason.ALREADY_VERIFIED)
    if inputs.review_status != ReviewStatus.NEEDS_REVIEW:
        return AutoApprovalDecision.reject(AutoApprovalReason.NOT_REVIEWABLE)

    if inputs.has_manual_edits or inputs.processing_status == ProcessingStatus.MANUALLY_UPDATED:
        return AutoApprovalDecision.reject(AutoApprovalReason.HAS_MANUAL_EDITS)

    if inputs.processing_status != ProcessingStatus.OCR_COMPLETE:
        return AutoApprovalDecision.reject(AutoApprovalReason.NOT_OCR_COMPLETE)

    if inputs.supplier_status is None:
        return AutoApprovalDecision.reject(AutoApprovalReason.NO_SUPPLIER)
    # A supplier auto-created from OCR text stays PENDING_REVIEW until a human accepts it.
    if inputs.supplier_status != SupplierStatus.ACTIVE:
        return AutoApprovalDecision.reject(AutoApprovalReason.SUPPLIER_NOT_ACTIVE)

    if inputs.line_count is None or inputs.warning_line_count is None:
        return AutoApprovalDecision.reject(AutoApprovalReason.NO_QUALITY_DATA)
    if inputs.line_count == 0:
        return AutoApprovalDecision.reject(AutoApprovalReason.NO_LINE_ITEMS)
    if inputs.warning_line_count > 0:
        return AutoApprovalDecision.reject(AutoApprovalReason.HAS_EXCLUDED_LINES)

    if (inputs.confidence_score or 0.0) < confidence_threshold:
        return AutoApprovalDecision.reject(AutoApprovalReason.LOW_CONFIDENCE)

    if inputs.invoice_date is None:
        return AutoApprovalDecision.reject(AutoApprovalReason.MISSING_INVOICE_DATE)

    if inputs.invoice_total is None or not Decimal(inputs.invoice_total).is_finite():
        return AutoApprovalDecision.reject(AutoApprovalReason.MISSING_TOTAL)
    # Credit notes are blocked until documents carry an explicit type.
    if inputs.invoice_total < 0:
        return AutoApprovalDecision.reject(AutoApprovalReason.NEGATIVE_TOTAL)

    return AutoApprovalDecision.approve()
