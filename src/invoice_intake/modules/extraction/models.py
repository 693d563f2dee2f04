from __future__ import annotations

import uuid

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from invoice_intake.core.models import Base, Timestamped, UUIDPrimaryKey


class DocumentOcrResult(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "extraction_ocr_result"

    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("documents_document.id"), unique=True, index=True
    )
    provider: Mapped[str] = mapped_column(String(50), default="textract")
    job_id: Mapped[str] = mapped_column(String(200))
    attempt: Mapped[int] = mapped_column(Integer, default=1)
    word_count: Mapped[int] = mapped_column(Integer, default=0)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    raw_payload: Mapped[dict] = mapped_column(JSON, default=dict)
    parsed_payload: Mapped[dict] = mapped_column(JSON, default=dict)
