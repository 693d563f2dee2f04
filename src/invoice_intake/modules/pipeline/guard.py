from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from invoice_intake.core.models import utcnow
from invoice_intake.modules.documents.models import DocumentArtifact, ProcessingStatus
from invoice_intake.modules.pipeline.errors import InvalidTransitionError

ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING_OCR: frozenset(
        {
            ProcessingStatus.PENDING_OCR,
            ProcessingStatus.OCR_PROCESSING,
            ProcessingStatus.OCR_FAILED,
        }
    ),
    ProcessingStatus.OCR_PROCESSING: frozenset(
        {
            ProcessingStatus.PENDING_OCR,
            ProcessingStatus.OCR_COMPLETE,
            ProcessingStatus.OCR_FAILED,
        }
    ),
    ProcessingStatus.OCR_COMPLETE: frozenset(
        {ProcessingStatus.PENDING_OCR, ProcessingStatus.MANUALLY_UPDATED}
    ),
    ProcessingStatus.OCR_FAILED: frozenset(
        {ProcessingStatus.PENDING_OCR, ProcessingStatus.OCR_PROCESSING}
    ),
    ProcessingStatus.MANUALLY_UPDATED: frozenset({ProcessingStatus.MANUALLY_UPDATED}),
}


@dataclass(frozen=True)
class StateSnapshot:
    """The (status, attempt count, job id) tuple every conditional write is checked against."""

    status: ProcessingStatus
    attempt_count: int
    job_id: str | None

    @classmethod
    def of(cls, document: DocumentArtifact) -> StateSnapshot:
        return cls(
            status=document.processing_status,
            attempt_count=document.ocr_attempt_count or 0,
            job_id=document.ocr_job_id,
        )


def check_transition(current: ProcessingStatus, target: ProcessingStatus) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot move document from {current.value} to {target.value}")


def compare_and_set(
    session: Session,
    document: DocumentArtifact,
    expected: StateSnapshot,
    **values: Any,
) -> bool:
    """
    Write ``values`` only if the stored tuple still equals ``expected``.

    Returns False when another caller advanced the record first; that is a lost race, not an
    error. The write joins the caller's transaction and the caller commits. On success the
    in-session document is expired so the next attribute access reloads it.
    """
    target = values.get("processing_status")
    if target is not None:
        check_transition(expected.status, target)

    document_id: uuid.UUID = document.id
    conditions = [
        DocumentArtifact.id == document_id,
        DocumentArtifact.processing_status == expected.status,
        DocumentArtifact.ocr_attempt_count == expected.attempt_count,
    ]
    if expected.job_id is None:
        conditions.append(DocumentArtifact.ocr_job_id.is_(None))
    else:
        conditions.append(DocumentArtifact.ocr_job_id == expected.job_id)

    values.setdefault("updated_at", utcnow())
    result = session.execute(
        update(DocumentArtifact)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    session.expire(document)
    return True
