"""
Signed webhook fan-out.

The body is serialized once and signed per subscriber with its own secret:

    X-Webhook-Signature: hex(HMAC-SHA256(secret, body))

Deliveries go out concurrently. One failing subscriber fails the whole
dispatch, which sends the originating event back through the retry path.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timezone as dt_timezone
from typing import Any, Dict, List

import requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder

from .exceptions import WebhookDeliveryError
from .models import Event, WebhookSubscription

logger = logging.getLogger(__name__)


def iso_timestamp(dt) -> str:
    """ISO-8601 UTC with milliseconds and a trailing Z (2024-01-01T00:00:00.000Z)."""
    return dt.astimezone(dt_timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def build_payload(event: Event) -> Dict[str, Any]:
    return {
        "id": str(event.id),
        "type": event.type,
        "timestamp": iso_timestamp(event.created_at),
        "data": event.payload or {},
    }


def serialize(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, cls=DjangoJSONEncoder)


def sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def deliver(url: str, secret: str, body: str) -> None:
    headers = {
        "Content-Type": "application/json",
        settings.WEBHOOK_SIGNATURE_HEADER: sign(secret, body),
    }
    try:
        resp = requests.post(url, data=body.encode("utf-8"), headers=headers,
                             timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        raise WebhookDeliveryError(f"Webhook delivery to {url} failed: {exc}") from exc
    if not 200 <= resp.status_code < 300:
        raise WebhookDeliveryError(f"Webhook delivery to {url} failed: {resp.text or resp.status_code}")


def dispatch(event: Event) -> int:
    """
    Deliver `event` to every enabled subscription of its tenant and type.
    Returns the number of deliveries; raises WebhookDeliveryError after all
    deliveries settled if any of them failed.
    """
    subscriptions: List[WebhookSubscription] = list(
        WebhookSubscription.objects.filter(tenant_id=event.tenant_id, event_type=event.type, enabled=True)
    )
    if not subscriptions:
        return 0

    body = serialize(build_payload(event))
    workers = max(1, min(len(subscriptions), settings.WEBHOOK_MAX_CONCURRENCY))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webhook") as pool:
        futures = [pool.submit(deliver, sub.url, sub.secret, body) for sub in subscriptions]

    errors = [f.exception() for f in futures if f.exception() is not None]
    if errors:
        logger.warning("Webhook dispatch for event %s: %s of %s deliveries failed",
                       event.id, len(errors), len(subscriptions))
        raise errors[0]

    logger.info("Delivered event %s (%s) to %s webhook(s)", event.id, event.type, len(subscriptions))
    return len(subscriptions)
