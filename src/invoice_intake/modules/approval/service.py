from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.core.models import utcnow
from invoice_intake.modules.approval.engine import (
    AutoApprovalDecision,
    AutoApprovalInputs,
    AutoApprovalReason,
    decide_auto_approval,
)
from invoice_intake.modules.canonical.service import get_canonical_invoice, summarize_quality
from invoice_intake.modules.documents.models import (
    DocumentArtifact,
    ProcessingStatus,
    ReviewStatus,
    VerificationSource,
)
from invoice_intake.modules.invoices.models import Invoice
from invoice_intake.modules.locations.models import Location

logger = get_logger(__name__)


@dataclass(frozen=True)
class ApprovalOutcome:
    decision: AutoApprovalDecision
    applied: bool = False


@dataclass
class RetroAutoApproveSummary:
    location_id: uuid.UUID
    dry_run: bool
    evaluated: int = 0
    approved: int = 0
    approved_invoice_ids: list[uuid.UUID] = field(default_factory=list)
    skipped: dict[str, int] = field(default_factory=dict)


def build_inputs(
    session: Session, *, document: DocumentArtifact, invoice: Invoice
) -> AutoApprovalInputs:
    location = session.get(Location, document.location_id)
    summary = summarize_quality(get_canonical_invoice(session, invoice.id))
    supplier = invoice.supplier
    return AutoApprovalInputs(
        location_auto_approve_enabled=bool(location and location.auto_approve_enabled),
        processing_status=document.processing_status,
        review_status=document.review_status,
        confidence_score=document.confidence_score,
        invoice_is_verified=invoice.is_verified,
        invoice_total=invoice.total,
        supplier_status=supplier.status if supplier is not None else None,
        line_count=summary.line_count if summary else None,
        warning_line_count=summary.warning_line_count if summary else None,
        has_manual_edits=any(line.is_edited for line in invoice.lines),
        invoice_date=invoice.invoice_date,
    )


def _mark_verified(session: Session, *, document_id: uuid.UUID, invoice_id: uuid.UUID) -> bool:
    """Guarded AUTO verification of a document and its invoice, inside the caller's transaction."""
    now = utcnow()
    doc_result = session.execute(
        update(DocumentArtifact)
        .where(
            DocumentArtifact.id == document_id,
            DocumentArtifact.processing_status == ProcessingStatus.OCR_COMPLETE,
            DocumentArtifact.review_status == ReviewStatus.NEEDS_REVIEW,
            DocumentArtifact.deleted_at.is_(None),
        )
        .values(
            review_status=ReviewStatus.VERIFIED,
            verification_source=VerificationSource.AUTO,
            verified_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if doc_result.rowcount != 1:
        return False

    invoice_result = session.execute(
        update(Invoice)
        .where(Invoice.id == invoice_id, Invoice.is_verified.is_(False))
        .values(is_verified=True, verified_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if invoice_result.rowcount != 1:
        session.execute(
            update(DocumentArtifact)
            .where(DocumentArtifact.id == document_id)
            .values(review_status=ReviewStatus.NEEDS_REVIEW, verification_source=None, verified_at=None)
            .execution_options(synchronize_session=False)
        )
        return False
    return True


def apply_auto_approval(
    session: Session, *, document: DocumentArtifact, invoice: Invoice
) -> ApprovalOutcome:
    session.flush()
    decision = decide_auto_approval(
        build_inputs(session, document=document, invoice=invoice),
        confidence_threshold=settings.auto_approve_confidence_threshold,
    )
    if not decision.eligible:
        log_event(
            logger,
            "approval.auto.skipped",
            document_id=str(document.id),
            invoice_id=str(invoice.id),
            reason=decision.reason.value if decision.reason else None,
        )
        return ApprovalOutcome(decision=decision)

    applied = _mark_verified(session, document_id=document.id, invoice_id=invoice.id)
    if not applied:
        log_event(
            logger,
            "approval.auto.state_changed",
            document_id=str(document.id),
            invoice_id=str(invoice.id),
        )
        return ApprovalOutcome(decision=decision)

    session.expire(document)
    session.expire(invoice)
    log_event(
        logger, "approval.auto.applied", document_id=str(document.id), invoice_id=str(invoice.id)
    )
    return ApprovalOutcome(decision=decision, applied=True)


def retro_auto_approve(
    session: Session, *, location_id: uuid.UUID, dry_run: bool = False
) -> RetroAutoApproveSummary:
    """
    Re-evaluate every unverified OCR_COMPLETE invoice of a location, typically right after
    the location turns auto-approval on. Each approval commits on its own.
    """
    summary = RetroAutoApproveSummary(location_id=location_id, dry_run=dry_run)
    skipped: Counter[str] = Counter()

    rows = session.execute(
        select(Invoice, DocumentArtifact)
        .join(DocumentArtifact, DocumentArtifact.id == Invoice.document_id)
        .where(
            Invoice.location_id == location_id,
            Invoice.deleted_at.is_(None),
            Invoice.is_verified.is_(False),
            DocumentArtifact.deleted_at.is_(None),
            DocumentArtifact.processing_status == ProcessingStatus.OCR_COMPLETE,
            DocumentArtifact.review_status == ReviewStatus.NEEDS_REVIEW,
        )
        .order_by(Invoice.created_at)
    ).all()

    for invoice, document in rows:
        summary.evaluated += 1
        decision = decide_auto_approval(
            build_inputs(session, document=document, invoice=invoice),
            confidence_threshold=settings.auto_approve_confidence_threshold,
        )
        if not decision.eligible:
            skipped[decision.reason.value] += 1
            continue
        if dry_run:
            summary.approved += 1
            summary.approved_invoice_ids.append(invoice.id)
            continue
        if _mark_verified(session, document_id=document.id, invoice_id=invoice.id):
            session.commit()
            summary.approved += 1
            summary.approved_invoice_ids.append(invoice.id)
        else:
            session.rollback()
            skipped["STATE_CHANGED"] += 1

    summary.skipped = dict(skipped)
    log_event(
        logger,
        "approval.retro.finish",
        location_id=str(location_id),
        dry_run=dry_run,
        evaluated=summary.evaluated,
        approved=summary.approved,
        skipped=summary.skipped,
    )
    return summary
