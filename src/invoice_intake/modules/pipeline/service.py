from __future__ import annotations

import hashlib
import logging
import re
import time
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_intake.core.config import settings
from invoice_intake.core.db import SessionLocal
from invoice_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms
from invoice_intake.core.models import utcnow
from invoice_intake.core.notify import organisation_channel, publish_best_effort
from invoice_intake.core.storage import get_storage
from invoice_intake.modules.accounting.service import find_by_external_ref
from invoice_intake.modules.approval.service import apply_auto_approval
from invoice_intake.modules.canonical.models import CanonicalSource
from invoice_intake.modules.canonical.money import FieldKind, parse_money
from invoice_intake.modules.canonical.service import (
    get_canonical_invoice,
    replace_canonical_invoice,
    summarize_quality,
)
from invoice_intake.modules.canonical.spellcheck import get_spellchecker
from invoice_intake.modules.documents.models import (
    DocumentArtifact,
    DocumentSource,
    OcrFailureCategory,
    ProcessingStatus,
    ReviewStatus,
)
from invoice_intake.modules.extraction.failures import (
    FAILURE_HINTS,
    FailureClassification,
    classify_ocr_failure,
)
from invoice_intake.modules.extraction.models import DocumentOcrResult
from invoice_intake.modules.extraction.parsing import ParsedInvoice, parse_expense_payload
from invoice_intake.modules.extraction.preprocessing import preprocess_for_attempt, recipe_for_attempt
from invoice_intake.modules.extraction.provider import (
    OcrJobResult,
    OcrJobStatus,
    OcrProvider,
    OcrProviderError,
    get_ocr_provider,
)
from invoice_intake.modules.invoices.models import Invoice, InvoiceLineItem
from invoice_intake.modules.locations.models import Location
from invoice_intake.modules.pipeline.errors import (
    AttemptLimitReachedError,
    DocumentNotFoundError,
    InputValidationError,
    InvalidTransitionError,
)
from invoice_intake.modules.pipeline.guard import StateSnapshot, compare_and_set
from invoice_intake.modules.pipeline.schemas import (
    EnrichedStatus,
    InvoiceLineOut,
    InvoiceOut,
    QualitySummaryOut,
)
from invoice_intake.modules.suppliers.service import resolve_supplier

logger = get_logger(__name__)

_SAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise DocumentNotFoundError(f"Invalid document id: {value}") from e


def _safe_filename(filename: str) -> str:
    cleaned = _SAFE_FILENAME_RE.sub("_", filename.strip()).strip("._")
    return cleaned[:200] or "upload.bin"


def notify_document(document: DocumentArtifact, event: str, **payload: Any) -> bool:
    return publish_best_effort(
        channel=organisation_channel(document.organisation_id),
        event=event,
        payload={
            "document_id": str(document.id),
            "processing_status": document.processing_status.value,
            **payload,
        },
    )


def get_document(
    session: Session, *, document_id: uuid.UUID | str, organisation_id: uuid.UUID | None = None
) -> DocumentArtifact:
    document = session.get(DocumentArtifact, _as_uuid(document_id))
    if document is None:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    if organisation_id is not None and document.organisation_id != organisation_id:
        raise DocumentNotFoundError(f"Document {document_id} not found")
    return document


def get_invoice_for_document(session: Session, document_id: uuid.UUID) -> Invoice | None:
    return session.scalar(select(Invoice).where(Invoice.document_id == document_id))


def can_retry(document: DocumentArtifact) -> bool:
    if document.is_deleted or document.ocr_attempt_count >= settings.ocr_max_attempts:
        return False
    if document.processing_status == ProcessingStatus.OCR_FAILED:
        return True
    return (
        document.processing_status == ProcessingStatus.OCR_COMPLETE
        and document.review_status != ReviewStatus.VERIFIED
    )


def submit_document(
    session: Session,
    *,
    organisation_id: uuid.UUID,
    location_id: uuid.UUID,
    filename: str,
    content_type: str | None,
    body: bytes,
    external_ref: str | None = None,
    source_type: DocumentSource = DocumentSource.UPLOAD,
) -> DocumentArtifact:
    """Store the original bytes and create a PENDING_OCR document. The caller enqueues the start."""
    if not body:
        raise InputValidationError("Uploaded file is empty")
    location = session.get(Location, location_id)
    if location is None or location.organisation_id != organisation_id:
        raise InputValidationError(f"Unknown location {location_id}")

    key = f"orgs/{organisation_id}/documents/{uuid.uuid4()}-{_safe_filename(filename)}"
    stored = get_storage().put(key=key, body=body, content_type=content_type)

    document = DocumentArtifact(
        organisation_id=organisation_id,
        location_id=location_id,
        source_type=source_type,
        external_ref=(external_ref or "").strip() or None,
        filename=filename,
        content_type=content_type or "application/octet-stream",
        byte_size=stored.byte_size,
        sha256=hashlib.sha256(body).hexdigest(),
        storage_key=stored.key,
        processing_status=ProcessingStatus.PENDING_OCR,
        ocr_attempt_count=0,
        review_status=ReviewStatus.NONE,
        preprocessing_flags={},
    )
    session.add(document)
    session.commit()
    session.refresh(document)
    log_event(
        logger,
        "document.submitted",
        document_id=str(document.id),
        location_id=str(location_id),
        filename=filename,
        content_type=document.content_type,
        byte_size=document.byte_size,
        source_type=source_type.value,
    )
    notify_document(document, "document.created")
    return document


def _fail_document(
    session: Session,
    document: DocumentArtifact,
    expected: StateSnapshot,
    classification: FailureClassification,
) -> bool:
    won = compare_and_set(
        session,
        document,
        expected,
        processing_status=ProcessingStatus.OCR_FAILED,
        ocr_job_id=None,
        ocr_failure_category=classification.category,
        ocr_failure_detail=classification.detail[:2000],
    )
    if not won:
        session.rollback()
        log_event(
            logger,
            "ocr.fail.lost_race",
            document_id=str(document.id),
            category=classification.category.value,
        )
        return False
    session.commit()
    log_event(
        logger,
        "ocr.document.failed",
        level=logging.WARNING,
        document_id=str(document.id),
        attempt=document.ocr_attempt_count,
        category=classification.category.value,
        detail=classification.detail[:200],
    )
    notify_document(
        document,
        "document.ocr_failed",
        category=classification.category.value,
        hint=classification.hint,
    )
    return True


def _prepare_source(document: DocumentArtifact, attempt: int) -> tuple[str, str | None, dict[str, Any]]:
    """Return (key to send to the provider, derived key or None, flags to persist)."""
    try:
        result = preprocess_for_attempt(
            storage_key=document.storage_key,
            content_type=document.content_type,
            filename=document.filename,
            attempt=attempt,
        )
    except Exception as e:  # noqa: BLE001
        log_exception(
            logger,
            "preprocess.failure",
            document_id=str(document.id),
            attempt=attempt,
        )
        flags: dict[str, Any] = {
            "fallback_to_original": True,
            "error_type": type(e).__name__,
            "provider_deskew": recipe_for_attempt(attempt).provider_deskew,
        }
        return document.storage_key, None, flags
    return result.storage_key, (result.storage_key if result.derived else None), result.flags


def start_ocr_job(*, document_id: uuid.UUID | str, provider: OcrProvider | None = None) -> bool:
    """
    Move a PENDING_OCR / OCR_FAILED document into OCR_PROCESSING and submit it to the provider.

    Returns True when a provider job is attached. The attempt cap is enforced before the provider
    is ever called.
    """
    with SessionLocal() as session:
        document = session.get(DocumentArtifact, _as_uuid(document_id))
        if document is None or document.is_deleted:
            log_event(logger, "ocr.start.skipped", document_id=str(document_id), reason="missing")
            return False

        start = time.monotonic()
        snapshot = StateSnapshot.of(document)
        if snapshot.status not in (ProcessingStatus.PENDING_OCR, ProcessingStatus.OCR_FAILED):
            log_event(
                logger,
                "ocr.start.skipped",
                document_id=str(document.id),
                reason="status",
                processing_status=snapshot.status.value,
            )
            return False

        next_attempt = snapshot.attempt_count + 1
        if next_attempt > settings.ocr_max_attempts:
            log_event(
                logger,
                "ocr.start.attempt_limit",
                level=logging.WARNING,
                document_id=str(document.id),
                attempt_count=snapshot.attempt_count,
                max_attempts=settings.ocr_max_attempts,
            )
            return False

        if not document.storage_key:
            _fail_document(
                session,
                document,
                snapshot,
                FailureClassification(OcrFailureCategory.UNKNOWN, "Document has no stored file"),
            )
            return False

        try:
            source_key, derived_key, flags = _prepare_source(document, next_attempt)
            provider = provider or get_ocr_provider()
        except Exception:
            log_exception(logger, "ocr.start.fatal", document_id=str(document.id), attempt=next_attempt)
            return False

        won = compare_and_set(
            session,
            document,
            snapshot,
            processing_status=ProcessingStatus.OCR_PROCESSING,
            ocr_attempt_count=next_attempt,
            ocr_job_id=None,
            ocr_failure_category=None,
            ocr_failure_detail=None,
            confidence_score=None,
            last_ocr_attempt_at=utcnow(),
            preprocessing_flags=flags,
            processed_storage_key=derived_key,
        )
        if not won:
            session.rollback()
            log_event(logger, "ocr.start.lost_race", document_id=str(document.id))
            return False
        session.commit()

        processing = StateSnapshot(ProcessingStatus.OCR_PROCESSING, next_attempt, None)
        try:
            job_id = provider.start_job(
                storage_key=source_key, provider_deskew=bool(flags.get("provider_deskew"))
            )
            if not compare_and_set(session, document, processing, ocr_job_id=job_id):
                session.rollback()
                log_event(
                    logger,
                    "ocr.start.job_orphaned",
                    level=logging.WARNING,
                    document_id=str(document.id),
                    job_id=job_id,
                )
                return False
            session.commit()
        except Exception as e:  # noqa: BLE001
            session.rollback()
            log_exception(logger, "ocr.start.failure", document_id=str(document.id), attempt=next_attempt)
            _fail_document(session, document, processing, classify_ocr_failure(e))
            return False

        log_event(
            logger,
            "ocr.start.success",
            document_id=str(document.id),
            attempt=next_attempt,
            job_id=job_id,
            derived=derived_key is not None,
            duration_ms=monotonic_ms(start),
        )
        notify_document(document, "document.ocr_started", attempt=next_attempt)
        return True


def _money(raw: str | None, kind: FieldKind) -> Decimal | None:
    if not raw:
        return None
    return parse_money(raw, kind).value


def _materialize_invoice(
    session: Session, document: DocumentArtifact, parsed: ParsedInvoice
) -> Invoice:
    override = find_by_external_ref(
        session, organisation_id=document.organisation_id, external_ref=document.external_ref
    )
    invoice_date = parsed.invoice_date
    supplier_name = parsed.supplier_name
    if override is not None:
        invoice_date = override.invoice_date or invoice_date
        supplier_name = override.supplier_name or supplier_name
        log_event(
            logger,
            "ocr.header.override",
            document_id=str(document.id),
            external_ref=document.external_ref,
            has_date=override.invoice_date is not None,
            has_supplier=override.supplier_name is not None,
        )

    resolution = resolve_supplier(
        session, organisation_id=document.organisation_id, name=supplier_name
    )

    invoice = get_invoice_for_document(session, document.id)
    if invoice is None:
        invoice = Invoice(
            organisation_id=document.organisation_id,
            location_id=document.location_id,
            document_id=document.id,
        )
        session.add(invoice)
    invoice.supplier = resolution.supplier if resolution else None
    invoice.invoice_number = parsed.invoice_number
    invoice.invoice_date = invoice_date
    invoice.currency = parsed.currency
    invoice.subtotal = parsed.subtotal
    invoice.tax = parsed.tax
    invoice.total = parsed.total
    invoice.is_verified = False
    invoice.verified_at = None

    invoice.lines.clear()
    session.flush()
    for idx, line in enumerate(parsed.lines):
        invoice.lines.append(
            InvoiceLineItem(
                position=idx,
                description=line.description,
                product_code=line.product_code,
                quantity=line.quantity,
                unit_label=line.unit_label,
                unit_price=_money(line.raw_unit_price_text, FieldKind.UNIT_PRICE),
                line_total=_money(line.raw_line_total_text, FieldKind.LINE_TOTAL),
                raw_quantity_text=line.raw_quantity_text,
                raw_unit_price_text=line.raw_unit_price_text,
                raw_line_total_text=line.raw_line_total_text,
                confidence_score=line.confidence,
                is_edited=False,
            )
        )
    session.flush()
    return invoice


def _store_ocr_result(
    session: Session,
    document: DocumentArtifact,
    *,
    job_id: str,
    result: OcrJobResult,
    parsed: ParsedInvoice,
    provider: OcrProvider,
) -> None:
    record = session.scalar(
        select(DocumentOcrResult).where(DocumentOcrResult.document_id == document.id)
    )
    if record is None:
        record = DocumentOcrResult(document_id=document.id)
        session.add(record)
    record.provider = provider.name
    record.job_id = job_id
    record.attempt = document.ocr_attempt_count
    record.word_count = parsed.word_count
    record.confidence = parsed.confidence
    record.raw_payload = result.payload
    record.parsed_payload = parsed.to_json()


def _complete_document(
    session: Session,
    document: DocumentArtifact,
    snapshot: StateSnapshot,
    *,
    result: OcrJobResult,
    parsed: ParsedInvoice,
    provider: OcrProvider,
) -> bool:
    won = compare_and_set(
        session,
        document,
        snapshot,
        processing_status=ProcessingStatus.OCR_COMPLETE,
        ocr_job_id=None,
        ocr_failure_category=None,
        ocr_failure_detail=None,
        review_status=ReviewStatus.NEEDS_REVIEW,
        verification_source=None,
        verified_at=None,
        confidence_score=parsed.confidence,
    )
    if not won:
        session.rollback()
        log_event(logger, "ocr.poll.lost_race", document_id=str(document.id), job_id=snapshot.job_id)
        return False

    # Everything below commits together with the OCR_COMPLETE transition or not at all.
    try:
        _store_ocr_result(
            session,
            document,
            job_id=snapshot.job_id or "",
            result=result,
            parsed=parsed,
            provider=provider,
        )
        invoice = _materialize_invoice(session, document, parsed)
        replace_canonical_invoice(
            session, invoice, source=CanonicalSource.OCR, spellchecker=get_spellchecker()
        )
        outcome = apply_auto_approval(session, document=document, invoice=invoice)
        session.commit()
    except Exception as e:  # noqa: BLE001
        session.rollback()
        log_exception(logger, "ocr.complete.failure", document_id=str(document.id))
        # The rollback restored the snapshot row, so the failure write competes like any other.
        _fail_document(session, document, snapshot, classify_ocr_failure(e))
        return False

    log_event(
        logger,
        "ocr.document.complete",
        document_id=str(document.id),
        invoice_id=str(invoice.id),
        line_count=len(parsed.lines),
        confidence=parsed.confidence,
        auto_approved=outcome.applied,
        approval_reason=outcome.decision.reason.value if outcome.decision.reason else None,
    )
    notify_document(
        document,
        "document.ocr_complete",
        invoice_id=str(invoice.id),
        auto_approved=outcome.applied,
    )
    return True


def _advance_job(session: Session, document: DocumentArtifact, provider: OcrProvider) -> None:
    snapshot = StateSnapshot.of(document)
    start = time.monotonic()
    try:
        result = provider.get_job_result(job_id=snapshot.job_id or "")
    except Exception as e:  # noqa: BLE001
        classification = classify_ocr_failure(e)
        if classification.category == OcrFailureCategory.PROVIDER_TIMEOUT:
            log_event(
                logger,
                "ocr.poll.transient",
                level=logging.WARNING,
                document_id=str(document.id),
                detail=classification.detail[:200],
            )
            return
        log_exception(logger, "ocr.poll.failure", document_id=str(document.id))
        _fail_document(session, document, snapshot, classification)
        return

    log_event(
        logger,
        "ocr.poll.result",
        document_id=str(document.id),
        job_id=snapshot.job_id,
        job_status=result.status.value,
        duration_ms=monotonic_ms(start),
    )
    if result.status == OcrJobStatus.IN_PROGRESS:
        return
    if result.status == OcrJobStatus.FAILED:
        error = OcrProviderError(result.error_message or "OCR job failed", code=result.error_code)
        _fail_document(session, document, snapshot, classify_ocr_failure(error))
        return

    parsed = parse_expense_payload(result.payload)
    if (
        parsed.word_count < settings.ocr_min_word_count
        or parsed.confidence < settings.ocr_min_confidence_percent
    ):
        _fail_document(
            session,
            document,
            snapshot,
            classify_ocr_failure(confidence_score=parsed.confidence, word_count=parsed.word_count),
        )
        return

    _complete_document(session, document, snapshot, result=result, parsed=parsed, provider=provider)


def poll_document(
    session: Session,
    *,
    document_id: uuid.UUID | str,
    organisation_id: uuid.UUID | None = None,
    provider: OcrProvider | None = None,
) -> EnrichedStatus:
    """
    Advance an in-flight job if the provider has an outcome, then return the enriched status.

    Safe to call repeatedly and concurrently. Documents that are not OCR_PROCESSING with an
    attached job are returned as-is without touching the provider.
    """
    document = get_document(session, document_id=document_id, organisation_id=organisation_id)
    if (
        not document.is_deleted
        and document.processing_status == ProcessingStatus.OCR_PROCESSING
        and document.ocr_job_id
    ):
        _advance_job(session, document, provider or get_ocr_provider())
        session.refresh(document)
    return enrich_status(session, document)


def find_document_by_job_id(session: Session, job_id: str) -> DocumentArtifact | None:
    return session.scalar(select(DocumentArtifact).where(DocumentArtifact.ocr_job_id == job_id))


def retry_document(
    session: Session, *, document_id: uuid.UUID | str, organisation_id: uuid.UUID | None = None
) -> DocumentArtifact:
    """Send a failed, or completed but unverified, document back to PENDING_OCR."""
    document = get_document(session, document_id=document_id, organisation_id=organisation_id)
    if document.is_deleted:
        raise InvalidTransitionError("Deleted documents cannot be retried")
    if document.ocr_attempt_count >= settings.ocr_max_attempts:
        raise AttemptLimitReachedError(
            f"Document already used {document.ocr_attempt_count} of "
            f"{settings.ocr_max_attempts} OCR attempts"
        )
    if not can_retry(document):
        raise InvalidTransitionError(
            f"Document in {document.processing_status.value} / {document.review_status.value} "
            "cannot be retried"
        )

    snapshot = StateSnapshot.of(document)
    won = compare_and_set(
        session,
        document,
        snapshot,
        processing_status=ProcessingStatus.PENDING_OCR,
        ocr_job_id=None,
        ocr_failure_category=None,
        ocr_failure_detail=None,
    )
    if not won:
        session.rollback()
        raise InvalidTransitionError("Document changed while retrying; reload and try again")
    session.commit()
    session.refresh(document)
    log_event(
        logger,
        "document.retry",
        document_id=str(document.id),
        attempt_count=document.ocr_attempt_count,
        from_status=snapshot.status.value,
    )
    notify_document(document, "document.retry")
    return document


def _set_deleted(
    session: Session,
    *,
    document_id: uuid.UUID | str,
    organisation_id: uuid.UUID | None,
    deleted: bool,
) -> DocumentArtifact:
    document = get_document(session, document_id=document_id, organisation_id=organisation_id)
    stamp = utcnow() if deleted else None
    document.deleted_at = stamp
    invoice = get_invoice_for_document(session, document.id)
    if invoice is not None:
        invoice.deleted_at = stamp
    session.commit()
    session.refresh(document)
    log_event(
        logger,
        "document.deleted" if deleted else "document.restored",
        document_id=str(document.id),
        invoice_id=str(invoice.id) if invoice else None,
    )
    return document


def soft_delete_document(
    session: Session, *, document_id: uuid.UUID | str, organisation_id: uuid.UUID | None = None
) -> DocumentArtifact:
    return _set_deleted(
        session, document_id=document_id, organisation_id=organisation_id, deleted=True
    )


def restore_document(
    session: Session, *, document_id: uuid.UUID | str, organisation_id: uuid.UUID | None = None
) -> DocumentArtifact:
    return _set_deleted(
        session, document_id=document_id, organisation_id=organisation_id, deleted=False
    )


def _invoice_out(invoice: Invoice) -> InvoiceOut:
    return InvoiceOut(
        id=invoice.id,
        document_id=invoice.document_id,
        supplier_id=invoice.supplier_id,
        supplier_name=invoice.supplier.name if invoice.supplier is not None else None,
        invoice_number=invoice.invoice_number,
        invoice_date=invoice.invoice_date,
        currency=invoice.currency,
        subtotal=invoice.subtotal,
        tax=invoice.tax,
        total=invoice.total,
        is_verified=invoice.is_verified,
        verified_at=invoice.verified_at,
        lines=[InvoiceLineOut.model_validate(line, from_attributes=True) for line in invoice.lines],
    )


def enrich_status(session: Session, document: DocumentArtifact) -> EnrichedStatus:
    invoice = get_invoice_for_document(session, document.id)
    quality = None
    if invoice is not None:
        summary = summarize_quality(get_canonical_invoice(session, invoice.id))
        if summary is not None:
            quality = QualitySummaryOut(
                line_count=summary.line_count,
                warning_line_count=summary.warning_line_count,
                has_excluded_lines=summary.has_excluded_lines,
            )

    category = document.ocr_failure_category
    return EnrichedStatus(
        id=document.id,
        organisation_id=document.organisation_id,
        location_id=document.location_id,
        filename=document.filename,
        content_type=document.content_type,
        processing_status=document.processing_status,
        review_status=document.review_status,
        verification_source=document.verification_source,
        verified_at=document.verified_at,
        ocr_attempt_count=document.ocr_attempt_count,
        max_attempts=settings.ocr_max_attempts,
        ocr_failure_category=category,
        ocr_failure_detail=document.ocr_failure_detail,
        failure_hint=FAILURE_HINTS.get(category) if category is not None else None,
        can_retry=can_retry(document),
        confidence_score=document.confidence_score,
        preprocessing_flags=dict(document.preprocessing_flags or {}),
        signed_url=get_storage().signed_read_url(
            key=document.storage_key, content_type=document.content_type
        ),
        is_deleted=document.is_deleted,
        invoice=_invoice_out(invoice) if invoice is not None else None,
        quality=quality,
        created_at=document.created_at,
        updated_at=document.updated_at,
    )
