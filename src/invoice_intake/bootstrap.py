from __future__ import annotations

# isort: off
import invoice_intake.models  # noqa: F401
# isort: on

from invoice_intake.core.config import settings
from invoice_intake.core.db import engine
from invoice_intake.core.logging import configure_logging
from invoice_intake.core.models import Base
from invoice_intake.modules.canonical.spellcheck import initialize_spellchecker


def bootstrap() -> None:
    configure_logging()
    if settings.environment in {"dev", "test"} and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    # Dictionary load happens once here, never on the request path.
    initialize_spellchecker()
