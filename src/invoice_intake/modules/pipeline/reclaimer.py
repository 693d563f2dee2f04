from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from invoice_intake.core.config import settings
from invoice_intake.core.db import SessionLocal
from invoice_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms
from invoice_intake.core.models import utcnow
from invoice_intake.modules.documents.models import (
    DocumentArtifact,
    OcrFailureCategory,
    ProcessingStatus,
)
from invoice_intake.modules.extraction.failures import FailureClassification
from invoice_intake.modules.pipeline.guard import StateSnapshot, compare_and_set
from invoice_intake.modules.pipeline.service import notify_document

logger = get_logger(__name__)


@dataclass
class ReclaimSummary:
    scanned: int = 0
    reset_ids: list[uuid.UUID] = field(default_factory=list)
    failed_ids: list[uuid.UUID] = field(default_factory=list)
    skipped: int = 0
    errors: int = 0


def find_orphans(session: Session, *, stale_before: datetime) -> list[DocumentArtifact]:
    return list(
        session.scalars(
            select(DocumentArtifact)
            .where(
                DocumentArtifact.deleted_at.is_(None),
                DocumentArtifact.updated_at < stale_before,
                or_(
                    DocumentArtifact.processing_status == ProcessingStatus.PENDING_OCR,
                    and_(
                        DocumentArtifact.processing_status == ProcessingStatus.OCR_PROCESSING,
                        DocumentArtifact.ocr_job_id.is_(None),
                    ),
                ),
            )
            .order_by(DocumentArtifact.updated_at)
        )
    )


def _reclaim_one(
    session: Session,
    document: DocumentArtifact,
    snapshot: StateSnapshot,
    summary: ReclaimSummary,
) -> None:
    if snapshot.attempt_count < settings.ocr_max_attempts:
        won = compare_and_set(
            session,
            document,
            snapshot,
            processing_status=ProcessingStatus.PENDING_OCR,
            ocr_attempt_count=snapshot.attempt_count + 1,
            ocr_job_id=None,
            ocr_failure_category=None,
            ocr_failure_detail=None,
        )
        if not won:
            session.rollback()
            summary.skipped += 1
            log_event(logger, "reclaim.document.lost_race", document_id=str(document.id))
            return
        session.commit()
        summary.reset_ids.append(document.id)
        log_event(
            logger,
            "reclaim.document.reset",
            document_id=str(document.id),
            from_status=snapshot.status.value,
            attempt_count=snapshot.attempt_count + 1,
        )
        return

    classification = FailureClassification(
        OcrFailureCategory.PROVIDER_TIMEOUT,
        f"No OCR progress for {settings.reclaim_stale_minutes} minutes after "
        f"{snapshot.attempt_count} attempts",
    )
    won = compare_and_set(
        session,
        document,
        snapshot,
        processing_status=ProcessingStatus.OCR_FAILED,
        ocr_job_id=None,
        ocr_failure_category=classification.category,
        ocr_failure_detail=classification.detail,
    )
    if not won:
        session.rollback()
        summary.skipped += 1
        log_event(logger, "reclaim.document.lost_race", document_id=str(document.id))
        return
    session.commit()
    summary.failed_ids.append(document.id)
    log_event(
        logger,
        "reclaim.document.failed",
        level=logging.WARNING,
        document_id=str(document.id),
        attempt_count=snapshot.attempt_count,
    )
    notify_document(
        document,
        "document.ocr_failed",
        category=classification.category.value,
        hint=classification.hint,
    )


def reclaim_orphans(*, now: datetime | None = None) -> ReclaimSummary:
    """
    Sweep documents abandoned before a provider job was attached.

    Under the attempt cap they go back to PENDING_OCR with the attempt consumed; at the cap they
    fail with PROVIDER_TIMEOUT. A failure on one document never stops the sweep.
    """
    start = time.monotonic()
    stale_before = (now or utcnow()) - timedelta(minutes=settings.reclaim_stale_minutes)
    summary = ReclaimSummary()
    with SessionLocal() as session:
        orphans = find_orphans(session, stale_before=stale_before)
        summary.scanned = len(orphans)
        # Snapshots are taken at read time; commits below expire and reload the rows.
        candidates = [(document, document.id, StateSnapshot.of(document)) for document in orphans]
        for document, document_id, snapshot in candidates:
            try:
                _reclaim_one(session, document, snapshot, summary)
            except Exception:  # noqa: BLE001
                session.rollback()
                summary.errors += 1
                log_exception(logger, "reclaim.document.error", document_id=str(document_id))

    log_event(
        logger,
        "reclaim.finish",
        scanned=summary.scanned,
        reset=len(summary.reset_ids),
        failed=len(summary.failed_ids),
        skipped=summary.skipped,
        errors=summary.errors,
        duration_ms=monotonic_ms(start),
    )
    return summary
