from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any

import httpx

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event, log_exception

logger = get_logger(__name__)


class RealtimeNotifier:
    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:  # pragma: no cover
        raise NotImplementedError


class NullRealtimeNotifier(RealtimeNotifier):
    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        log_event(logger, "realtime.publish.skipped", channel=channel, realtime_event=event)


class HttpRealtimeNotifier(RealtimeNotifier):
    """Posts events to a realtime fan-out webhook (Pusher-style relay)."""

    def __init__(self, url: str, secret: str | None, timeout_seconds: float) -> None:
        self._url = url
        self._secret = secret
        self._timeout = timeout_seconds

    def _signature(self, body: bytes) -> str | None:
        if not self._secret:
            return None
        return hmac.new(self._secret.encode(), body, hashlib.sha256).hexdigest()

    def publish(self, *, channel: str, event: str, payload: dict[str, Any]) -> None:
        body = json.dumps(
            {"channel": channel, "event": event, "data": payload}, default=str
        ).encode()
        headers = {"Content-Type": "application/json"}
        signature = self._signature(body)
        if signature:
            headers["X-Signature"] = signature
        resp = httpx.post(self._url, content=body, headers=headers, timeout=self._timeout)
        resp.raise_for_status()


def organisation_channel(organisation_id: Any) -> str:
    return f"org-{organisation_id}"


_notifier: RealtimeNotifier | None = None


def get_notifier() -> RealtimeNotifier:
    global _notifier  # noqa: PLW0603
    if _notifier is not None:
        return _notifier
    if settings.realtime_webhook_url:
        _notifier = HttpRealtimeNotifier(
            settings.realtime_webhook_url,
            settings.realtime_webhook_secret,
            settings.realtime_timeout_seconds,
        )
    else:
        _notifier = NullRealtimeNotifier()
    return _notifier


def publish_best_effort(*, channel: str, event: str, payload: dict[str, Any]) -> bool:
    """Publish an event; failures are logged and never reach the caller."""
    try:
        get_notifier().publish(channel=channel, event=event, payload=payload)
    except Exception:  # noqa: BLE001
        log_exception(logger, "realtime.publish.failure", channel=channel, realtime_event=event)
        return False
    return True
