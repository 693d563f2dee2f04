from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event, monotonic_ms
from invoice_intake.core.storage import s3_region

logger = get_logger(__name__)


class OcrJobStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class OcrJobResult:
    status: OcrJobStatus
    payload: dict[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None


class OcrProviderError(RuntimeError):
    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class OcrProvider:
    name = "base"

    def start_job(self, *, storage_key: str, provider_deskew: bool = False) -> str:  # pragma: no cover
        raise NotImplementedError

    def get_job_result(self, *, job_id: str) -> OcrJobResult:  # pragma: no cover
        raise NotImplementedError


def _client_error_code(error: ClientError) -> str | None:
    return (error.response.get("Error") or {}).get("Code")


class TextractOcrProvider(OcrProvider):
    """AWS Textract asynchronous expense analysis over objects in the storage bucket."""

    name = "textract"

    def __init__(self) -> None:
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=settings.textract_region or s3_region(),
        )
        config = Config(retries={"max_attempts": 3, "mode": "standard"}, connect_timeout=10)
        self._client = session.client("textract", config=config)
        self._bucket = settings.s3_bucket

    def start_job(self, *, storage_key: str, provider_deskew: bool = False) -> str:
        # Textract deskews natively; the flag is recorded by the caller, nothing to send.
        start = time.monotonic()
        try:
            resp = self._client.start_expense_analysis(
                DocumentLocation={"S3Object": {"Bucket": self._bucket, "Name": storage_key}}
            )
        except ClientError as e:
            raise OcrProviderError(str(e), code=_client_error_code(e)) from e
        except BotoCoreError as e:
            raise OcrProviderError(str(e), code=type(e).__name__) from e

        job_id = resp.get("JobId")
        if not job_id:
            raise OcrProviderError("Textract returned no JobId", code="MissingJobId")
        log_event(
            logger,
            "ocr.provider.start",
            provider=self.name,
            storage_key=storage_key,
            job_id=job_id,
            provider_deskew=provider_deskew,
            duration_ms=monotonic_ms(start),
        )
        return job_id

    def get_job_result(self, *, job_id: str) -> OcrJobResult:
        documents: list[dict[str, Any]] = []
        next_token: str | None = None
        while True:
            kwargs: dict[str, Any] = {"JobId": job_id}
            if next_token:
                kwargs["NextToken"] = next_token
            try:
                resp = self._client.get_expense_analysis(**kwargs)
            except ClientError as e:
                raise OcrProviderError(str(e), code=_client_error_code(e)) from e
            except BotoCoreError as e:
                raise OcrProviderError(str(e), code=type(e).__name__) from e

            job_status = resp.get("JobStatus")
            if job_status == "IN_PROGRESS":
                return OcrJobResult(status=OcrJobStatus.IN_PROGRESS)
            if job_status == "FAILED":
                return OcrJobResult(
                    status=OcrJobStatus.FAILED,
                    error_code="JobFailed",
                    error_message=resp.get("StatusMessage") or "Textract job failed",
                )

            documents.extend(resp.get("ExpenseDocuments") or [])
            next_token = resp.get("NextToken")
            if not next_token:
                break

        return OcrJobResult(
            status=OcrJobStatus.SUCCEEDED,
            payload={"JobStatus": "SUCCEEDED", "ExpenseDocuments": documents},
        )


_provider: OcrProvider | None = None


def get_ocr_provider() -> OcrProvider:
    global _provider  # noqa: PLW0603
    if _provider is None:
        _provider = TextractOcrProvider()
    return _provider
