from __future__ import annotations

import os
import shutil
import uuid
from pathlib import Path
from typing import Any

import pytest

# Set env before any invoice_intake imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.invoice_intake_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("SPELLCHECK_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("REALTIME_WEBHOOK_URL", "")


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import invoice_intake.models  # noqa: F401
    from invoice_intake.core.db import engine
    from invoice_intake.core.models import Base

    # Reset cached collaborators
    import invoice_intake.core.notify as notify_mod
    import invoice_intake.core.storage as storage_mod
    import invoice_intake.modules.extraction.provider as provider_mod

    storage_mod._storage = None
    notify_mod._notifier = None
    provider_mod._provider = None

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


class FakeOcrProvider:
    """In-memory OCR provider. ``results`` maps job id to the result returned on poll."""

    name = "fake"

    def __init__(self) -> None:
        from invoice_intake.modules.extraction.provider import OcrJobResult, OcrJobStatus

        self.started: list[dict[str, Any]] = []
        self.polled: list[str] = []
        self.results: dict[str, Any] = {}
        self.default_result = OcrJobResult(status=OcrJobStatus.IN_PROGRESS)
        self.start_error: Exception | None = None
        self.poll_error: Exception | None = None
        self.on_poll = None

    def start_job(self, *, storage_key: str, provider_deskew: bool = False) -> str:
        if self.start_error is not None:
            raise self.start_error
        job_id = f"job-{len(self.started) + 1}"
        self.started.append(
            {"storage_key": storage_key, "provider_deskew": provider_deskew, "job_id": job_id}
        )
        return job_id

    def get_job_result(self, *, job_id: str):
        self.polled.append(job_id)
        hook, self.on_poll = self.on_poll, None
        if hook is not None:
            hook(job_id)
        if self.poll_error is not None:
            raise self.poll_error
        return self.results.get(job_id, self.default_result)

    def succeed(self, job_id: str, payload: dict[str, Any]) -> None:
        from invoice_intake.modules.extraction.provider import OcrJobResult, OcrJobStatus

        self.results[job_id] = OcrJobResult(status=OcrJobStatus.SUCCEEDED, payload=payload)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = False

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("realtime channel down")
        self.events.append((channel, event, payload))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


@pytest.fixture
def fake_provider(monkeypatch) -> FakeOcrProvider:
    import invoice_intake.modules.extraction.provider as provider_mod

    provider = FakeOcrProvider()
    monkeypatch.setattr(provider_mod, "_provider", provider)
    return provider


@pytest.fixture
def notifier(monkeypatch) -> RecordingNotifier:
    import invoice_intake.core.notify as notify_mod

    recorder = RecordingNotifier()
    monkeypatch.setattr(notify_mod, "_notifier", recorder)
    return recorder


def _field(kind: str, text: str, confidence: float) -> dict[str, Any]:
    return {
        "Type": {"Text": kind, "Confidence": confidence},
        "ValueDetection": {"Text": text, "Confidence": confidence},
    }


@pytest.fixture
def expense_payload():
    """Build a Textract-shaped expense analysis payload."""

    def _build(
        *,
        vendor: str | None = "Fresh Produce Co",
        invoice_number: str = "INV-1001",
        invoice_date: str = "2026-03-01",
        total: str | None = "165.50",
        currency: str | None = "AUD",
        confidence: float = 99.0,
        words: int = 40,
        lines: list[tuple[str, str, str, str]] | None = None,
    ) -> dict[str, Any]:
        summary = [
            _field("INVOICE_RECEIPT_ID", invoice_number, confidence),
            _field("INVOICE_RECEIPT_DATE", invoice_date, confidence),
        ]
        if vendor is not None:
            summary.append(_field("VENDOR_NAME", vendor, confidence))
        if total is not None:
            total_field = _field("TOTAL", total, confidence)
            if currency:
                total_field["Currency"] = {"Code": currency}
            summary.append(total_field)

        if lines is None:
            lines = [
                ("Frozen Brontosaurus Ribs", "10 KG", "12.05", "120.50"),
                ("Prosciutto di Parma", "2", "22.50", "45.00"),
            ]
        items = [
            {
                "LineItemExpenseFields": [
                    _field("ITEM", description, confidence),
                    _field("QUANTITY", quantity, confidence),
                    _field("UNIT_PRICE", unit_price, confidence),
                    _field("PRICE", line_total, confidence),
                ]
            }
            for description, quantity, unit_price, line_total in lines
        ]
        return {
            "JobStatus": "SUCCEEDED",
            "ExpenseDocuments": [
                {
                    "SummaryFields": summary,
                    "LineItemGroups": [{"LineItems": items}],
                    "Blocks": [{"BlockType": "WORD", "Text": f"w{i}"} for i in range(words)],
                }
            ],
        }

    return _build


@pytest.fixture
def organisation_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_location(organisation_id):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.locations.service import create_location

    def _make(*, auto_approve_enabled: bool = False) -> uuid.UUID:
        with SessionLocal() as session:
            location = create_location(
                session,
                organisation_id=organisation_id,
                name="Harbour Kitchen",
                auto_approve_enabled=auto_approve_enabled,
            )
            return location.id

    return _make


@pytest.fixture
def submit(organisation_id, make_location):
    """Submit a PDF document and return its id. Does not start OCR."""
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.service import submit_document

    def _submit(
        *,
        location_id: uuid.UUID | None = None,
        auto_approve_enabled: bool = False,
        external_ref: str | None = None,
        filename: str = "invoice.pdf",
        content_type: str = "application/pdf",
        body: bytes = b"%PDF-1.4 invoice body",
    ) -> uuid.UUID:
        location_id = location_id or make_location(auto_approve_enabled=auto_approve_enabled)
        with SessionLocal() as session:
            document = submit_document(
                session,
                organisation_id=organisation_id,
                location_id=location_id,
                filename=filename,
                content_type=content_type,
                body=body,
                external_ref=external_ref,
            )
            return document.id

    return _submit


@pytest.fixture
def active_supplier(organisation_id):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.suppliers.models import Supplier, SupplierStatus
    from invoice_intake.modules.suppliers.service import normalize_supplier_name

    def _make(name: str = "Fresh Produce Co") -> uuid.UUID:
        with SessionLocal() as session:
            supplier = Supplier(
                organisation_id=organisation_id,
                name=name,
                normalized_name=normalize_supplier_name(name),
                status=SupplierStatus.ACTIVE,
            )
            session.add(supplier)
            session.commit()
            return supplier.id

    return _make
