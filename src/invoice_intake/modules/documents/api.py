from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from invoice_intake.api.deps import get_organisation_id
from invoice_intake.core.config import settings
from invoice_intake.core.db import db_session
from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.core.storage import StorageError, get_storage, verify_local_signature
from invoice_intake.modules.documents.models import DocumentSource
from invoice_intake.modules.pipeline.schemas import EnrichedStatus
from invoice_intake.modules.pipeline.service import (
    enrich_status,
    poll_document,
    restore_document,
    retry_document,
    soft_delete_document,
    submit_document,
)
from invoice_intake.worker.tasks import start_ocr_job_task

router = APIRouter(tags=["documents"])
files_router = APIRouter(tags=["files"])
logger = get_logger(__name__)


def _enqueue_start(document_id: uuid.UUID) -> None:
    async_result = start_ocr_job_task.delay(str(document_id))
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="start_ocr_job",
        celery_task_id=async_result.id,
        document_id=str(document_id),
    )


@router.post("/documents", response_model=EnrichedStatus)
async def upload_document(
    location_id: uuid.UUID = Form(...),
    external_ref: str | None = Form(default=None),
    upload: UploadFile = File(...),
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    body = await upload.read()
    log_event(
        logger,
        "upload.received",
        location_id=str(location_id),
        filename=upload.filename or "upload.bin",
        content_type=upload.content_type,
        byte_size=len(body),
    )
    document = submit_document(
        session,
        organisation_id=organisation_id,
        location_id=location_id,
        filename=upload.filename or "upload.bin",
        content_type=upload.content_type,
        body=body,
        external_ref=external_ref,
        source_type=DocumentSource.UPLOAD,
    )
    _enqueue_start(document.id)
    session.refresh(document)
    return enrich_status(session, document)


@router.get("/documents/{document_id}", response_model=EnrichedStatus)
def get_document_status(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    return poll_document(session, document_id=document_id, organisation_id=organisation_id)


@router.post("/documents/{document_id}/retry", response_model=EnrichedStatus)
def retry_document_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    document = retry_document(session, document_id=document_id, organisation_id=organisation_id)
    _enqueue_start(document.id)
    session.refresh(document)
    return enrich_status(session, document)


@router.delete("/documents/{document_id}", response_model=EnrichedStatus)
def delete_document(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    document = soft_delete_document(
        session, document_id=document_id, organisation_id=organisation_id
    )
    return enrich_status(session, document)


@router.post("/documents/{document_id}/restore", response_model=EnrichedStatus)
def restore_document_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    document = restore_document(session, document_id=document_id, organisation_id=organisation_id)
    return enrich_status(session, document)


@files_router.get("/files/{key:path}")
def read_local_file(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    content_type: str | None = Query(default=None),
) -> Response:
    if settings.storage_backend != "local":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not verify_local_signature(
        key=key, expires=expires, signature=signature, content_type=content_type
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")
    try:
        body = get_storage().get(key=key)
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found") from e
    return Response(content=body, media_type=content_type or "application/octet-stream")
