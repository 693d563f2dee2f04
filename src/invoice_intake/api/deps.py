from __future__ import annotations

import uuid

from fastapi import Header, HTTPException, status

from invoice_intake.core.logging import set_organisation_context


def get_organisation_id(
    x_organisation_id: str | None = Header(default=None, alias="X-Organisation-Id"),
) -> uuid.UUID:
    """Tenant of the caller. Authentication happens upstream of this service."""
    if not x_organisation_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Organisation-Id"
        )
    try:
        organisation_id = uuid.UUID(x_organisation_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-Organisation-Id"
        ) from e
    set_organisation_context(str(organisation_id))
    return organisation_id
