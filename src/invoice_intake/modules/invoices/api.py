from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invoice_intake.api.deps import get_organisation_id
from invoice_intake.core.db import db_session
from invoice_intake.modules.pipeline.schemas import EnrichedStatus, InvoiceEdits
from invoice_intake.modules.pipeline.verification import verify_invoice

router = APIRouter(tags=["invoices"])


@router.post("/invoices/{invoice_id}/verify", response_model=EnrichedStatus)
def verify_invoice_endpoint(
    invoice_id: uuid.UUID,
    payload: InvoiceEdits,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> EnrichedStatus:
    return verify_invoice(
        session, invoice_id=invoice_id, edits=payload, organisation_id=organisation_id
    )
