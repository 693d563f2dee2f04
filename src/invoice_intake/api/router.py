from __future__ import annotations

from fastapi import APIRouter

from invoice_intake.modules.documents.api import files_router
from invoice_intake.modules.documents.api import router as documents_router
from invoice_intake.modules.extraction.api import router as webhooks_router
from invoice_intake.modules.invoices.api import router as invoices_router
from invoice_intake.modules.locations.api import router as locations_router

router = APIRouter()

router.include_router(locations_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(invoices_router, prefix="/api")
router.include_router(webhooks_router, prefix="/api")
router.include_router(files_router)


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
