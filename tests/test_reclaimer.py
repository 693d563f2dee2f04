from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import update


def _age(document_id: uuid.UUID, *, minutes: int, **values) -> None:
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.core.models import utcnow
    from invoice_intake.modules.documents.models import DocumentArtifact

    with SessionLocal() as session:
        session.execute(
            update(DocumentArtifact)
            .where(DocumentArtifact.id == document_id)
            .values(updated_at=utcnow() - timedelta(minutes=minutes), **values)
        )
        session.commit()


def _document(document_id: uuid.UUID):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.documents.models import DocumentArtifact

    with SessionLocal() as session:
        document = session.get(DocumentArtifact, document_id)
        session.expunge(document)
        return document


def test_stale_orphans_are_reset_then_failed(notifier, submit):
    from invoice_intake.modules.documents.models import OcrFailureCategory, ProcessingStatus
    from invoice_intake.modules.pipeline.reclaimer import reclaim_orphans

    document_id = submit()
    _age(
        document_id,
        minutes=30,
        processing_status=ProcessingStatus.OCR_PROCESSING,
        ocr_attempt_count=2,
        ocr_job_id=None,
    )

    summary = reclaim_orphans()
    assert summary.reset_ids == [document_id]
    document = _document(document_id)
    assert document.processing_status == ProcessingStatus.PENDING_OCR
    assert document.ocr_attempt_count == 3

    _age(document_id, minutes=30)
    summary = reclaim_orphans()
    assert summary.failed_ids == [document_id]
    document = _document(document_id)
    assert document.processing_status == ProcessingStatus.OCR_FAILED
    assert document.ocr_failure_category == OcrFailureCategory.PROVIDER_TIMEOUT
    assert document.ocr_attempt_count == 3
    assert notifier.names()[-1] == "document.ocr_failed"


def test_fresh_and_in_flight_documents_are_left_alone(fake_provider, submit):
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.modules.pipeline.reclaimer import reclaim_orphans
    from invoice_intake.modules.pipeline.service import start_ocr_job

    fresh_id = submit()
    in_flight_id = submit()
    start_ocr_job(document_id=in_flight_id)
    _age(in_flight_id, minutes=30)

    summary = reclaim_orphans()

    assert summary.scanned == 0
    assert _document(fresh_id).processing_status == ProcessingStatus.PENDING_OCR
    assert _document(fresh_id).ocr_attempt_count == 0
    in_flight = _document(in_flight_id)
    assert in_flight.processing_status == ProcessingStatus.OCR_PROCESSING
    assert in_flight.ocr_job_id == "job-1"


def test_deleted_and_terminal_documents_are_ignored(submit):
    from invoice_intake.core.models import utcnow
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.modules.pipeline.reclaimer import reclaim_orphans

    deleted_id = submit()
    _age(deleted_id, minutes=30, deleted_at=utcnow())
    failed_id = submit()
    _age(failed_id, minutes=30, processing_status=ProcessingStatus.OCR_FAILED, ocr_attempt_count=1)

    summary = reclaim_orphans()

    assert summary.scanned == 0
    assert _document(deleted_id).processing_status == ProcessingStatus.PENDING_OCR
    assert _document(failed_id).processing_status == ProcessingStatus.OCR_FAILED


def test_reclaim_task_restarts_reset_documents(fake_provider, submit):
    from invoice_intake.modules.documents.models import ProcessingStatus
    from invoice_intake.worker.tasks import reclaim_orphans_task

    document_id = submit()
    _age(document_id, minutes=30)

    reclaim_orphans_task.delay()

    document = _document(document_id)
    assert document.processing_status == ProcessingStatus.OCR_PROCESSING
    # One attempt consumed by the reset, one by the restart.
    assert document.ocr_attempt_count == 2
    assert fake_provider.started[0]["job_id"] == "job-1"
