from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Date, Enum, Float, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_intake.core.models import Base, Timestamped, UUIDPrimaryKey
from invoice_intake.modules.canonical.units import UnitCategory


class CanonicalSource(str, enum.Enum):
    OCR = "OCR"
    MANUAL = "MANUAL"


class QualityStatus(str, enum.Enum):
    OK = "OK"
    WARN = "WARN"


class AdjustmentStatus(str, enum.Enum):
    NONE = "NONE"
    MODIFIED = "MODIFIED"


class CanonicalInvoice(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "canonical_invoice"

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("invoices_invoice.id"), unique=True, index=True
    )
    supplier_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    source: Mapped[CanonicalSource] = mapped_column(Enum(CanonicalSource, native_enum=False))
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    line_count: Mapped[int] = mapped_column(Integer, default=0)
    warning_line_count: Mapped[int] = mapped_column(Integer, default=0)

    lines = relationship(
        "CanonicalLineItem",
        back_populates="canonical_invoice",
        cascade="all, delete-orphan",
        order_by="CanonicalLineItem.position",
    )


class CanonicalLineItem(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "canonical_line_item"

    canonical_invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("canonical_invoice.id"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)
    source_line_ref: Mapped[str] = mapped_column(String(100))

    raw_description: Mapped[str] = mapped_column(Text, default="")
    normalized_description: Mapped[str] = mapped_column(Text, default="", index=True)
    product_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit_label: Mapped[str | None] = mapped_column(String(50), nullable=True)
    unit_category: Mapped[UnitCategory] = mapped_column(
        Enum(UnitCategory, native_enum=False), default=UnitCategory.UNKNOWN
    )
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    line_total: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    quality_status: Mapped[QualityStatus] = mapped_column(
        Enum(QualityStatus, native_enum=False), default=QualityStatus.OK, index=True
    )
    warn_reasons: Mapped[list] = mapped_column(JSON, default=list)
    adjustment_status: Mapped[AdjustmentStatus] = mapped_column(
        Enum(AdjustmentStatus, native_enum=False), default=AdjustmentStatus.NONE
    )

    canonical_invoice = relationship("CanonicalInvoice", back_populates="lines")
