"""Signed webhook POSTs for outbox events."""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
SIGNATURE_HEADER = "X-GuestSnap-Signature"
EVENT_HEADER = "X-GuestSnap-Event"
DELIVERY_HEADER = "X-GuestSnap-Delivery"


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: int | None = None
    error: str = ""


def sign_payload(body, secret):
    """Return the hex HMAC-SHA256 of ``body`` (bytes) keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def encode_event(event):
    """Serialize an outbox event into the webhook request body."""
    envelope = {
        "id": str(event.pk),
        "type": event.event_type,
        "subject_id": event.subject_id,
        "created_at": event.created_at,
        "data": event.payload,
    }
    return json.dumps(envelope, default=str, sort_keys=True).encode("utf-8")


def post_event(client, endpoint, event):
    """POST one outbox event to one endpoint.

    Args:
        client: A shared httpx.Client.
        endpoint: A WebhookEndpoint instance.
        event: An OutboxEvent instance.

    Returns:
        A DeliveryResult. Transport and HTTP errors are reported, not raised.
    """
    body = encode_event(event)
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign_payload(body, endpoint.secret),
        EVENT_HEADER: event.event_type,
        DELIVERY_HEADER: str(event.pk),
    }

    try:
        response = client.post(str(endpoint.url), content=body, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        error = f"HTTP {status}: {exc.response.text[:200]}"
        logger.warning(
            "Webhook rejected: event=%s url=%s error=%s", event.pk, endpoint.url, error
        )
        return DeliveryResult(ok=False, status_code=status, error=error)
    except httpx.RequestError as exc:
        error = f"{type(exc).__name__}: {exc}"
        logger.warning(
            "Webhook unreachable: event=%s url=%s error=%s",
            event.pk,
            endpoint.url,
            error,
        )
        return DeliveryResult(ok=False, error=error)

    logger.info(
        "Webhook delivered: event=%s url=%s status=%d",
        event.pk,
        endpoint.url,
        response.status_code,
    )
    return DeliveryResult(ok=True, status_code=response.status_code)
