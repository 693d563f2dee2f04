from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from invoice_intake.modules.documents.models import (
    OcrFailureCategory,
    ProcessingStatus,
    ReviewStatus,
    VerificationSource,
)


class InvoiceLineOut(BaseModel):
    id: uuid.UUID
    position: int
    description: str
    product_code: str | None
    quantity: Decimal | None
    unit_label: str | None
    unit_price: Decimal | None
    line_total: Decimal | None
    raw_quantity_text: str | None
    raw_unit_price_text: str | None
    raw_line_total_text: str | None
    confidence_score: float | None
    is_edited: bool


class InvoiceOut(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    supplier_id: uuid.UUID | None
    supplier_name: str | None = None
    invoice_number: str | None
    invoice_date: date | None
    currency: str | None
    subtotal: Decimal | None
    tax: Decimal | None
    total: Decimal | None
    is_verified: bool
    verified_at: datetime | None
    lines: list[InvoiceLineOut] = Field(default_factory=list)


class QualitySummaryOut(BaseModel):
    line_count: int
    warning_line_count: int
    has_excluded_lines: bool


class EnrichedStatus(BaseModel):
    id: uuid.UUID
    organisation_id: uuid.UUID
    location_id: uuid.UUID
    filename: str
    content_type: str
    processing_status: ProcessingStatus
    review_status: ReviewStatus
    verification_source: VerificationSource | None
    verified_at: datetime | None
    ocr_attempt_count: int
    max_attempts: int
    ocr_failure_category: OcrFailureCategory | None
    ocr_failure_detail: str | None
    failure_hint: str | None
    can_retry: bool
    confidence_score: float | None
    preprocessing_flags: dict[str, Any]
    signed_url: str | None
    is_deleted: bool
    invoice: InvoiceOut | None = None
    quality: QualitySummaryOut | None = None
    created_at: datetime
    updated_at: datetime


class LineEdit(BaseModel):
    id: uuid.UUID | None = None
    description: str = ""
    product_code: str | None = None
    quantity: Decimal | None = None
    unit_label: str | None = None
    unit_price: Decimal | None = None
    line_total: Decimal | None = None


class InvoiceEdits(BaseModel):
    """Fields a reviewer may change. Omitted fields keep their extracted value."""

    supplier_id: uuid.UUID | None = None
    supplier_name: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    currency: str | None = None
    subtotal: Decimal | None = None
    tax: Decimal | None = None
    total: Decimal | None = None
    lines: list[LineEdit] | None = None
