from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class LocationCreate(BaseModel):
    name: str
    auto_approve_enabled: bool = False


class LocationOut(BaseModel):
    id: uuid.UUID
    organisation_id: uuid.UUID
    name: str
    auto_approve_enabled: bool
    created_at: datetime
    updated_at: datetime


class AutoApproveUpdate(BaseModel):
    enabled: bool
    run_retroactive: bool = False


class RetroAutoApproveOut(BaseModel):
    location_id: uuid.UUID
    dry_run: bool
    evaluated: int
    approved: int
    approved_invoice_ids: list[uuid.UUID]
    skipped: dict[str, int]
