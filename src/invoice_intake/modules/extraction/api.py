from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from invoice_intake.core.db import db_session
from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.modules.pipeline.service import find_document_by_job_id
from invoice_intake.worker.tasks import poll_ocr_job_task

router = APIRouter(tags=["webhooks"])
logger = get_logger(__name__)


class OcrCompletionNotice(BaseModel):
    """Provider completion notice, e.g. the Textract SNS message body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job_id: str = Field(alias="JobId")
    status: str | None = Field(default=None, alias="Status")


class WebhookAck(BaseModel):
    accepted: bool
    document_id: str | None = None


@router.post("/webhooks/ocr", response_model=WebhookAck)
def ocr_completion_webhook(
    payload: OcrCompletionNotice, session: Session = Depends(db_session)
) -> WebhookAck:
    document = find_document_by_job_id(session, payload.job_id)
    if document is None:
        log_event(logger, "webhook.ocr.unknown_job", job_id=payload.job_id, status=payload.status)
        return WebhookAck(accepted=False)

    document_id = str(document.id)
    async_result = poll_ocr_job_task.delay(document_id)
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="poll_ocr_job",
        celery_task_id=async_result.id,
        document_id=document_id,
        job_id=payload.job_id,
    )
    return WebhookAck(accepted=True, document_id=document_id)
