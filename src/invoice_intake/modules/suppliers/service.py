from __future__ import annotations

import enum
import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.modules.suppliers.models import (
    Supplier,
    SupplierAlias,
    SupplierSource,
    SupplierStatus,
)

logger = get_logger(__name__)

_LEGAL_SUFFIXES = (
    " pty ltd",
    " limited",
    " ltd",
    " company",
    " co",
    " incorporated",
    " inc",
    " proprietary",
    " group",
    " holdings",
    " enterprises",
)


class SupplierMatchType(str, enum.Enum):
    ALIAS = "ALIAS"
    EXACT = "EXACT"
    CREATED = "CREATED"


@dataclass(frozen=True)
class SupplierResolution:
    supplier: Supplier
    match_type: SupplierMatchType

    @property
    def supplier_id(self) -> uuid.UUID:
        return self.supplier.id

    @property
    def status(self) -> SupplierStatus:
        return self.supplier.status


def normalize_supplier_name(name: str | None) -> str:
    """Lowercase, drop ``.,'``, a leading "the" and one trailing legal suffix."""
    if not name:
        return ""
    normalized = re.sub(r"[.,']", "", name.lower())
    normalized = " ".join(normalized.split())
    if normalized.startswith("the "):
        normalized = normalized[4:].strip()
    for suffix in _LEGAL_SUFFIXES:
        if normalized.endswith(suffix) and len(normalized) > len(suffix):
            normalized = normalized[: -len(suffix)].strip()
            break
    return normalized


def find_supplier(session: Session, *, organisation_id: uuid.UUID, name: str) -> SupplierResolution | None:
    normalized = normalize_supplier_name(name)
    if not normalized:
        return None

    alias = session.scalar(
        select(SupplierAlias).where(
            SupplierAlias.organisation_id == organisation_id,
            SupplierAlias.normalized_alias == normalized,
        )
    )
    if alias is not None:
        return SupplierResolution(supplier=alias.supplier, match_type=SupplierMatchType.ALIAS)

    supplier = session.scalar(
        select(Supplier).where(
            Supplier.organisation_id == organisation_id,
            Supplier.normalized_name == normalized,
        )
    )
    if supplier is not None:
        return SupplierResolution(supplier=supplier, match_type=SupplierMatchType.EXACT)
    return None


def resolve_supplier(
    session: Session, *, organisation_id: uuid.UUID, name: str | None
) -> SupplierResolution | None:
    """
    Resolve free-text supplier name to a supplier: alias first, then exact normalized name.

    Unknown names create a PENDING_REVIEW supplier, which never passes auto-approval until a
    human activates it.
    """
    if not name or not normalize_supplier_name(name):
        return None

    found = find_supplier(session, organisation_id=organisation_id, name=name)
    if found is not None:
        if found.match_type == SupplierMatchType.ALIAS:
            log_event(
                logger,
                "supplier.resolve.alias",
                supplier_id=str(found.supplier.id),
                raw_name=name[:50],
            )
        return found

    supplier = Supplier(
        organisation_id=organisation_id,
        name=name.strip()[:300],
        normalized_name=normalize_supplier_name(name),
        status=SupplierStatus.PENDING_REVIEW,
        source=SupplierSource.OCR,
    )
    session.add(supplier)
    session.flush()
    log_event(
        logger, "supplier.resolve.created", supplier_id=str(supplier.id), raw_name=name[:50]
    )
    return SupplierResolution(supplier=supplier, match_type=SupplierMatchType.CREATED)


def create_alias(
    session: Session, *, organisation_id: uuid.UUID, supplier_id: uuid.UUID, alias_name: str
) -> SupplierAlias | None:
    normalized = normalize_supplier_name(alias_name)
    if not normalized:
        return None

    alias = session.scalar(
        select(SupplierAlias).where(
            SupplierAlias.organisation_id == organisation_id,
            SupplierAlias.normalized_alias == normalized,
        )
    )
    if alias is None:
        alias = SupplierAlias(
            organisation_id=organisation_id,
            supplier_id=supplier_id,
            alias_name=alias_name.strip()[:300],
            normalized_alias=normalized,
        )
        session.add(alias)
    else:
        alias.supplier_id = supplier_id
    session.flush()
    return alias


def set_supplier_status(session: Session, *, supplier: Supplier, status: SupplierStatus) -> Supplier:
    supplier.status = status
    session.add(supplier)
    session.flush()
    log_event(logger, "supplier.status.updated", supplier_id=str(supplier.id), status=status.value)
    return supplier
