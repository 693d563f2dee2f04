from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.modules.locations.models import Location

logger = get_logger(__name__)


def create_location(
    session: Session, *, organisation_id: uuid.UUID, name: str, auto_approve_enabled: bool = False
) -> Location:
    location = Location(
        organisation_id=organisation_id, name=name, auto_approve_enabled=auto_approve_enabled
    )
    session.add(location)
    session.commit()
    return location


def get_location(session: Session, *, organisation_id: uuid.UUID, location_id: uuid.UUID) -> Location:
    location = session.get(Location, location_id)
    if location is None or location.organisation_id != organisation_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return location


def set_auto_approve(session: Session, *, location: Location, enabled: bool) -> Location:
    location.auto_approve_enabled = enabled
    session.add(location)
    session.commit()
    log_event(
        logger, "location.auto_approve.updated", location_id=str(location.id), enabled=enabled
    )
    return location
