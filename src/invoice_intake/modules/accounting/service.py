from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_intake.modules.accounting.models import AccountingInvoiceRecord


@dataclass(frozen=True)
class HeaderOverride:
    invoice_date: date | None = None
    supplier_name: str | None = None


def find_by_external_ref(
    session: Session, *, organisation_id: uuid.UUID, external_ref: str | None
) -> HeaderOverride | None:
    """Authoritative header values from the accounting system, when it knows this invoice."""
    if not external_ref:
        return None
    record = session.scalar(
        select(AccountingInvoiceRecord).where(
            AccountingInvoiceRecord.organisation_id == organisation_id,
            AccountingInvoiceRecord.external_ref == external_ref,
        )
    )
    if record is None:
        return None
    return HeaderOverride(
        invoice_date=record.invoice_date, supplier_name=(record.supplier_name or "").strip() or None
    )


def upsert_record(
    session: Session,
    *,
    organisation_id: uuid.UUID,
    external_ref: str,
    invoice_date: date | None,
    supplier_name: str | None,
) -> AccountingInvoiceRecord:
    record = session.scalar(
        select(AccountingInvoiceRecord).where(
            AccountingInvoiceRecord.organisation_id == organisation_id,
            AccountingInvoiceRecord.external_ref == external_ref,
        )
    )
    if record is None:
        record = AccountingInvoiceRecord(organisation_id=organisation_id, external_ref=external_ref)
    record.invoice_date = invoice_date
    record.supplier_name = supplier_name
    session.add(record)
    session.flush()
    return record
