from __future__ import annotations

import dataclasses
import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from invoice_intake.api.deps import get_organisation_id
from invoice_intake.core.db import db_session
from invoice_intake.modules.approval.service import retro_auto_approve
from invoice_intake.modules.locations.schemas import (
    AutoApproveUpdate,
    LocationCreate,
    LocationOut,
    RetroAutoApproveOut,
)
from invoice_intake.modules.locations.service import create_location, get_location, set_auto_approve

router = APIRouter(tags=["locations"])


@router.post("/locations", response_model=LocationOut)
def create_location_endpoint(
    payload: LocationCreate,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> LocationOut:
    location = create_location(
        session,
        organisation_id=organisation_id,
        name=payload.name,
        auto_approve_enabled=payload.auto_approve_enabled,
    )
    return LocationOut.model_validate(location, from_attributes=True)


@router.put("/locations/{location_id}/auto-approve", response_model=LocationOut)
def update_auto_approve(
    location_id: uuid.UUID,
    payload: AutoApproveUpdate,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> LocationOut:
    location = get_location(session, organisation_id=organisation_id, location_id=location_id)
    location = set_auto_approve(session, location=location, enabled=payload.enabled)
    if payload.enabled and payload.run_retroactive:
        retro_auto_approve(session, location_id=location.id)
        session.refresh(location)
    return LocationOut.model_validate(location, from_attributes=True)


@router.post("/locations/{location_id}/auto-approve/retro", response_model=RetroAutoApproveOut)
def retro_auto_approve_endpoint(
    location_id: uuid.UUID,
    dry_run: bool = True,
    session: Session = Depends(db_session),
    organisation_id: uuid.UUID = Depends(get_organisation_id),
) -> RetroAutoApproveOut:
    location = get_location(session, organisation_id=organisation_id, location_id=location_id)
    summary = retro_auto_approve(session, location_id=location.id, dry_run=dry_run)
    return RetroAutoApproveOut(**dataclasses.asdict(summary))
