from __future__ import annotations

import uuid
from urllib.parse import urlsplit

from fastapi.testclient import TestClient


def _client() -> TestClient:
    from invoice_intake.main import create_app

    return TestClient(create_app())


def test_healthz():
    with _client() as client:
        resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_requests_require_organisation_header():
    with _client() as client:
        missing = client.post("/api/locations", json={"name": "Harbour Kitchen"})
        invalid = client.post(
            "/api/locations",
            json={"name": "Harbour Kitchen"},
            headers={"X-Organisation-Id": "not-a-uuid"},
        )
    assert missing.status_code == 401
    assert invalid.status_code == 400


def test_upload_poll_and_verify(fake_provider, expense_payload, organisation_id):
    headers = {"X-Organisation-Id": str(organisation_id)}
    with _client() as client:
        location = client.post("/api/locations", json={"name": "Harbour Kitchen"}, headers=headers)
        assert location.status_code == 200
        location_id = location.json()["id"]

        uploaded = client.post(
            "/api/documents",
            data={"location_id": location_id},
            files={"upload": ("invoice 01.pdf", b"%PDF-1.4 invoice", "application/pdf")},
            headers=headers,
        )
        assert uploaded.status_code == 200
        body = uploaded.json()
        document_id = body["id"]
        # Celery runs eagerly in tests, so the provider job is already attached.
        assert body["processing_status"] == "OCR_PROCESSING"
        assert body["ocr_attempt_count"] == 1
        assert fake_provider.started[0]["job_id"] == "job-1"

        signed = urlsplit(body["signed_url"])
        download = client.get(f"{signed.path}?{signed.query}")
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4 invoice"
        tampered = client.get(f"{signed.path}?{signed.query.replace('signature=', 'signature=0')}")
        assert tampered.status_code == 403

        fake_provider.succeed("job-1", expense_payload())
        polled = client.get(f"/api/documents/{document_id}", headers=headers)
        assert polled.status_code == 200
        status = polled.json()
        assert status["processing_status"] == "OCR_COMPLETE"
        assert status["review_status"] == "NEEDS_REVIEW"
        assert status["quality"] == {
            "line_count": 2,
            "warning_line_count": 0,
            "has_excluded_lines": False,
        }

        verified = client.post(
            f"/api/invoices/{status['invoice']['id']}/verify",
            json={"invoice_number": "INV-1001-B"},
            headers=headers,
        )
        assert verified.status_code == 200
        assert verified.json()["processing_status"] == "MANUALLY_UPDATED"
        assert verified.json()["verification_source"] == "MANUAL"

        again = client.post(f"/api/documents/{document_id}/retry", headers=headers)
        assert again.status_code == 409


def test_documents_are_scoped_to_organisation(fake_provider, submit):
    document_id = submit()
    with _client() as client:
        resp = client.get(
            f"/api/documents/{document_id}", headers={"X-Organisation-Id": str(uuid.uuid4())}
        )
        unknown = client.post(
            f"/api/invoices/{uuid.uuid4()}/verify",
            json={},
            headers={"X-Organisation-Id": str(uuid.uuid4())},
        )
    assert resp.status_code == 404
    assert unknown.status_code == 404


def test_delete_and_restore_endpoints(submit, organisation_id):
    document_id = submit()
    headers = {"X-Organisation-Id": str(organisation_id)}
    with _client() as client:
        deleted = client.delete(f"/api/documents/{document_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json()["is_deleted"] is True
        retry = client.post(f"/api/documents/{document_id}/retry", headers=headers)
        assert retry.status_code == 409
        restored = client.post(f"/api/documents/{document_id}/restore", headers=headers)
        assert restored.json()["is_deleted"] is False


def test_webhook_advances_the_matching_document(fake_provider, expense_payload, submit):
    from invoice_intake.modules.pipeline.service import start_ocr_job

    document_id = submit()
    start_ocr_job(document_id=document_id)
    fake_provider.succeed("job-1", expense_payload())

    with _client() as client:
        resp = client.post("/api/webhooks/ocr", json={"JobId": "job-1", "Status": "SUCCEEDED"})
        unknown = client.post("/api/webhooks/ocr", json={"JobId": "job-404"})

    assert resp.json() == {"accepted": True, "document_id": str(document_id)}
    assert unknown.json() == {"accepted": False, "document_id": None}

    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.documents.models import DocumentArtifact, ProcessingStatus

    with SessionLocal() as session:
        document = session.get(DocumentArtifact, document_id)
        assert document.processing_status == ProcessingStatus.OCR_COMPLETE


def test_enabling_auto_approve_runs_retroactively(
    fake_provider, expense_payload, submit, make_location, active_supplier, organisation_id
):
    from invoice_intake.core.db import SessionLocal
    from invoice_intake.modules.pipeline.service import poll_document, start_ocr_job

    active_supplier("Fresh Produce Co")
    location_id = make_location()
    document_id = submit(location_id=location_id)
    start_ocr_job(document_id=document_id)
    fake_provider.succeed("job-1", expense_payload())
    with SessionLocal() as session:
        assert poll_document(session, document_id=document_id).review_status.value == "NEEDS_REVIEW"

    headers = {"X-Organisation-Id": str(organisation_id)}
    with _client() as client:
        dry_run = client.post(f"/api/locations/{location_id}/auto-approve/retro", headers=headers)
        assert dry_run.json()["approved"] == 0
        assert dry_run.json()["skipped"] == {"FEATURE_DISABLED": 1}

        updated = client.put(
            f"/api/locations/{location_id}/auto-approve",
            json={"enabled": True, "run_retroactive": True},
            headers=headers,
        )
        assert updated.status_code == 200
        assert updated.json()["auto_approve_enabled"] is True

        status = client.get(f"/api/documents/{document_id}", headers=headers).json()
    assert status["review_status"] == "VERIFIED"
    assert status["verification_source"] == "AUTO"
