from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_intake.core.models import Base, SoftDeletable, Timestamped, UUIDPrimaryKey


class ProcessingStatus(str, enum.Enum):
    PENDING_OCR = "PENDING_OCR"
    OCR_PROCESSING = "OCR_PROCESSING"
    OCR_COMPLETE = "OCR_COMPLETE"
    OCR_FAILED = "OCR_FAILED"
    MANUALLY_UPDATED = "MANUALLY_UPDATED"


class ReviewStatus(str, enum.Enum):
    NONE = "NONE"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    VERIFIED = "VERIFIED"


class VerificationSource(str, enum.Enum):
    AUTO = "AUTO"
    MANUAL = "MANUAL"


class OcrFailureCategory(str, enum.Enum):
    NOT_A_DOCUMENT = "NOT_A_DOCUMENT"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    DOCUMENT_TYPE_MISMATCH = "DOCUMENT_TYPE_MISMATCH"
    BLURRY = "BLURRY"
    LOW_RESOLUTION = "LOW_RESOLUTION"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    UNKNOWN = "UNKNOWN"


class DocumentSource(str, enum.Enum):
    UPLOAD = "UPLOAD"
    EMAIL = "EMAIL"
    API = "API"


class DocumentArtifact(UUIDPrimaryKey, Timestamped, SoftDeletable, Base):
    __tablename__ = "documents_document"

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    location_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("locations_location.id"), index=True
    )
    source_type: Mapped[DocumentSource] = mapped_column(
        Enum(DocumentSource, native_enum=False), default=DocumentSource.UPLOAD
    )
    external_ref: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)

    filename: Mapped[str] = mapped_column(String(512))
    content_type: Mapped[str] = mapped_column(String(200))
    byte_size: Mapped[int] = mapped_column(Integer)
    sha256: Mapped[str] = mapped_column(String(64), index=True)
    storage_key: Mapped[str] = mapped_column(String(1024), unique=True)
    processed_storage_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus, native_enum=False), default=ProcessingStatus.PENDING_OCR, index=True
    )
    ocr_job_id: Mapped[str | None] = mapped_column(String(200), nullable=True, index=True)
    ocr_attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    ocr_failure_category: Mapped[OcrFailureCategory | None] = mapped_column(
        Enum(OcrFailureCategory, native_enum=False), nullable=True
    )
    ocr_failure_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_ocr_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    preprocessing_flags: Mapped[dict] = mapped_column(JSON, default=dict)

    review_status: Mapped[ReviewStatus] = mapped_column(
        Enum(ReviewStatus, native_enum=False), default=ReviewStatus.NONE, index=True
    )
    verification_source: Mapped[VerificationSource | None] = mapped_column(
        Enum(VerificationSource, native_enum=False), nullable=True
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    location = relationship("Location")
