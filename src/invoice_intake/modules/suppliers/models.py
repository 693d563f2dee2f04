from __future__ import annotations

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoice_intake.core.models import Base, Timestamped, UUIDPrimaryKey


class SupplierStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PENDING_REVIEW = "PENDING_REVIEW"
    ARCHIVED = "ARCHIVED"


class SupplierSource(str, enum.Enum):
    MANUAL = "MANUAL"
    OCR = "OCR"


class Supplier(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "suppliers_supplier"
    __table_args__ = (
        UniqueConstraint("organisation_id", "normalized_name", name="uq_supplier_org_name"),
    )

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    name: Mapped[str] = mapped_column(String(300))
    normalized_name: Mapped[str] = mapped_column(String(300), index=True)
    status: Mapped[SupplierStatus] = mapped_column(
        Enum(SupplierStatus, native_enum=False), default=SupplierStatus.ACTIVE, index=True
    )
    source: Mapped[SupplierSource] = mapped_column(
        Enum(SupplierSource, native_enum=False), default=SupplierSource.MANUAL
    )

    aliases = relationship("SupplierAlias", back_populates="supplier", cascade="all, delete-orphan")


class SupplierAlias(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "suppliers_alias"
    __table_args__ = (
        UniqueConstraint("organisation_id", "normalized_alias", name="uq_supplier_alias_org_alias"),
    )

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("suppliers_supplier.id"), index=True
    )
    alias_name: Mapped[str] = mapped_column(String(300))
    normalized_alias: Mapped[str] = mapped_column(String(300))

    supplier = relationship("Supplier", back_populates="aliases")
