"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Locations first - documents and invoices reference them
from invoice_intake.modules.locations.models import Location  # noqa: F401

from invoice_intake.modules.accounting.models import AccountingInvoiceRecord  # noqa: F401
from invoice_intake.modules.canonical.models import CanonicalInvoice, CanonicalLineItem  # noqa: F401
from invoice_intake.modules.documents.models import DocumentArtifact  # noqa: F401
from invoice_intake.modules.extraction.models import DocumentOcrResult  # noqa: F401
from invoice_intake.modules.invoices.models import Invoice, InvoiceLineItem  # noqa: F401
from invoice_intake.modules.suppliers.models import Supplier, SupplierAlias  # noqa: F401
