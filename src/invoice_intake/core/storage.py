from __future__ import annotations

import hashlib
import hmac
import os
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlencode

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    byte_size: int
    content_type: str | None = None


class ObjectStorage:
    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def signed_read_url(
        self, *, key: str, content_type: str | None = None, ttl_seconds: int | None = None
    ) -> str:  # pragma: no cover
        raise NotImplementedError


def sign_local_url(*, key: str, expires: int, content_type: str | None) -> str:
    message = f"{key}\n{expires}\n{content_type or ''}".encode()
    return hmac.new(settings.secret_key.encode(), message, hashlib.sha256).hexdigest()


class LocalObjectStorage(ObjectStorage):
    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        path = self._root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except Exception:
            log_exception(
                logger, "storage.put.failure", backend="local", storage_key=key, byte_size=len(body)
            )
            raise
        log_event(
            logger,
            "storage.put.success",
            backend="local",
            storage_key=key,
            byte_size=len(body),
            content_type=content_type,
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body), content_type=content_type)

    def get(self, *, key: str) -> bytes:
        path = self._root / key
        if not path.exists():
            log_event(logger, "storage.get.failure", backend="local", storage_key=key)
            raise StorageError(f"Object not found: {key}")
        return path.read_bytes()

    def delete(self, *, key: str) -> None:
        path = self._root / key
        if path.exists():
            path.unlink()

    def signed_read_url(
        self, *, key: str, content_type: str | None = None, ttl_seconds: int | None = None
    ) -> str:
        expires = int(time.time()) + (ttl_seconds or settings.signed_url_ttl_seconds)
        query = {"expires": expires, "signature": sign_local_url(key=key, expires=expires, content_type=content_type)}
        if content_type:
            query["content_type"] = content_type
        return f"{settings.base_url.rstrip('/')}/files/{quote(key)}?{urlencode(query)}"


class S3ObjectStorage(ObjectStorage):
    _RETRYABLE_CODES = frozenset(
        {
            "RequestCanceled",
            "RequestTimeout",
            "Throttling",
            "ThrottlingException",
            "SlowDown",
            "InternalError",
            "ServiceUnavailable",
        }
    )

    def __init__(self) -> None:
        session = boto3.session.Session(
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            region_name=s3_region(),
        )
        config = Config(
            s3={"addressing_style": "virtual"},
            retries={"max_attempts": 3, "mode": "adaptive"},
            connect_timeout=30,
            read_timeout=60,
        )
        self._client = session.client("s3", endpoint_url=settings.s3_endpoint_url or None, config=config)
        self._bucket = settings.s3_bucket

    @property
    def bucket(self) -> str:
        return self._bucket

    def _retry_delay_s(self, attempt: int) -> float:
        # attempt=1 => 0.25s, attempt=2 => 0.5s, attempt=3 => 1.0s, ...
        return min(3.0, 0.25 * (2 ** (attempt - 1)))

    def _should_retry_error(self, error: Exception) -> bool:
        if isinstance(error, ClientError):
            code = (error.response.get("Error") or {}).get("Code")
            return code in self._RETRYABLE_CODES
        return isinstance(error, BotoCoreError)

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> StoredObject:
        start = time.monotonic()
        max_attempts = 5
        extra = {"ContentType": content_type} if content_type else {}
        for attempt in range(1, max_attempts + 1):
            try:
                self._client.put_object(Bucket=self._bucket, Key=key, Body=body, **extra)
                break
            except Exception as e:  # noqa: BLE001
                if attempt < max_attempts and self._should_retry_error(e):
                    delay_s = self._retry_delay_s(attempt)
                    log_event(
                        logger,
                        "storage.put.retry",
                        backend="s3",
                        storage_key=key,
                        attempt=attempt,
                        delay_s=delay_s,
                        error_type=type(e).__name__,
                    )
                    time.sleep(delay_s)
                    continue
                log_exception(
                    logger, "storage.put.failure", backend="s3", storage_key=key, attempt=attempt
                )
                raise
        log_event(
            logger,
            "storage.put.success",
            backend="s3",
            storage_key=key,
            byte_size=len(body),
            content_type=content_type,
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(key=key, byte_size=len(body), content_type=content_type)

    def get(self, *, key: str) -> bytes:
        try:
            resp = self._client.get_object(Bucket=self._bucket, Key=key)
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "storage.get.failure", backend="s3", storage_key=key)
            raise StorageError(f"Object not found: {key}") from e
        return resp["Body"].read()

    def delete(self, *, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except Exception:
            log_exception(logger, "storage.delete.failure", backend="s3", storage_key=key)
            raise

    def signed_read_url(
        self, *, key: str, content_type: str | None = None, ttl_seconds: int | None = None
    ) -> str:
        params = {"Bucket": self._bucket, "Key": key}
        if content_type:
            params["ResponseContentType"] = content_type
        return self._client.generate_presigned_url(
            "get_object",
            Params=params,
            ExpiresIn=ttl_seconds or settings.signed_url_ttl_seconds,
        )


def s3_region() -> str:
    region = settings.s3_region
    if not region or region.lower() == "auto":
        return "us-east-1"
    return region


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalObjectStorage(root)
    return _storage


def verify_local_signature(
    *, key: str, expires: int, signature: str, content_type: str | None, now: float | None = None
) -> bool:
    if expires < int(now if now is not None else time.time()):
        return False
    expected = sign_local_url(key=key, expires=expires, content_type=content_type)
    return hmac.compare_digest(expected, signature)
