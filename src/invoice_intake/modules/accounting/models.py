from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from invoice_intake.core.models import Base, Timestamped, UUIDPrimaryKey


class AccountingInvoiceRecord(UUIDPrimaryKey, Timestamped, Base):
    """Invoice header as recorded by the connected accounting system."""

    __tablename__ = "accounting_invoice_record"
    __table_args__ = (
        UniqueConstraint("organisation_id", "external_ref", name="uq_accounting_org_external_ref"),
    )

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    external_ref: Mapped[str] = mapped_column(String(200))
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
