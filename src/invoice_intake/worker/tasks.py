from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import invoice_intake.models  # noqa: F401
# isort: on

import time

from invoice_intake.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
)
from invoice_intake.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="start_ocr_job", bind=True)
def start_ocr_job_task(self, document_id: str) -> bool:
    from invoice_intake.modules.pipeline.service import start_ocr_job

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name="start_ocr_job",
        celery_task_id=task_id,
        document_id=document_id,
    )
    try:
        started = start_ocr_job(document_id=document_id)
        log_event(
            logger,
            "celery.task.finish",
            task_name="start_ocr_job",
            celery_task_id=task_id,
            document_id=document_id,
            started=started,
            duration_ms=monotonic_ms(start),
        )
        return started
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="start_ocr_job",
            celery_task_id=task_id,
            document_id=document_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)


@celery_app.task(name="poll_ocr_job", bind=True)
def poll_ocr_job_task(self, document_id: str) -> str:
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.service import poll_document

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name="poll_ocr_job",
        celery_task_id=task_id,
        document_id=document_id,
    )
    try:
        with SessionLocal() as session:
            status = poll_document(session, document_id=document_id)
        log_event(
            logger,
            "celery.task.finish",
            task_name="poll_ocr_job",
            celery_task_id=task_id,
            document_id=document_id,
            processing_status=status.processing_status.value,
            duration_ms=monotonic_ms(start),
        )
        return status.processing_status.value
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="poll_ocr_job",
            celery_task_id=task_id,
            document_id=document_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)


@celery_app.task(name="reclaim_orphans", bind=True)
def reclaim_orphans_task(self) -> dict[str, int]:
    from invoice_intake.modules.pipeline.reclaimer import reclaim_orphans

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(logger, "celery.task.start", task_name="reclaim_orphans", celery_task_id=task_id)
    try:
        summary = reclaim_orphans()
        for document_id in summary.reset_ids:
            start_ocr_job_task.delay(str(document_id))
        log_event(
            logger,
            "celery.task.finish",
            task_name="reclaim_orphans",
            celery_task_id=task_id,
            reset=len(summary.reset_ids),
            failed=len(summary.failed_ids),
            duration_ms=monotonic_ms(start),
        )
        return {"reset": len(summary.reset_ids), "failed": len(summary.failed_ids)}
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="reclaim_orphans",
            celery_task_id=task_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)
