from __future__ import annotations

import uuid

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from invoice_intake.core.models import Base, Timestamped, UUIDPrimaryKey


class Location(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "locations_location"

    organisation_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    name: Mapped[str] = mapped_column(String(200))
    auto_approve_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
