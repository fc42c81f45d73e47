"""
Durable event queue.

Producers call `emit_event`; the worker drives the rest of the lifecycle:
PENDING -> PROCESSING (claim) -> SUCCESS | PENDING (retry with backoff) | FAILED.
Events are never deleted, they are the audit trail of everything automation did.
"""
from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from django.db.models import Subquery
from django.utils import timezone

from .exceptions import InvalidEventState
from .models import Event, EventStatus

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
MAX_BACKOFF_MINUTES = 60


def backoff(attempts: int) -> timedelta:
    return timedelta(minutes=min(MAX_BACKOFF_MINUTES, 2 ** attempts))


def emit_event(*, tenant=None, tenant_id=None, event_type: str, payload: Optional[Dict[str, Any]] = None,
               delay_ms: int = 0) -> Event:
    """
    Persist a new PENDING event. Callers never wait for automation side effects.
    """
    now = timezone.now()
    event = Event.objects.create(
        tenant_id=tenant.id if tenant is not None else tenant_id,
        type=str(event_type),
        payload=payload or {},
        status=EventStatus.PENDING,
        attempts=0,
        next_run_at=now + timedelta(milliseconds=max(0, delay_ms or 0)),
    )
    logger.debug("Emitted event %s (%s)", event.id, event.type)
    return event


def claim_next(now=None) -> Optional[Event]:
    """
    Take ownership of the oldest due PENDING event, or return None.

    The status flip is one conditional UPDATE; a poller that loses the race
    updates zero rows and simply gets nothing back.
    """
    now = now or timezone.now()
    token = uuid.uuid4()
    due = (
        Event.objects
        .filter(status=EventStatus.PENDING, next_run_at__lte=now)
        .order_by("next_run_at", "created_at")
        .values("pk")[:1]
    )
    claimed = (
        Event.objects
        .filter(pk__in=Subquery(due), status=EventStatus.PENDING)
        .update(status=EventStatus.PROCESSING, claim_token=token, updated_at=timezone.now())
    )
    if not claimed:
        return None
    return Event.objects.select_related("tenant").get(claim_token=token)


def complete(event: Event) -> Event:
    event.status = EventStatus.SUCCESS
    event.last_error = None
    event.claim_token = None
    event.save(update_fields=["status", "last_error", "claim_token", "updated_at"])
    return event


def fail(event: Event, error, now=None) -> Event:
    """
    Record one failed attempt. Retries with exponential backoff until
    MAX_ATTEMPTS, after which the event stays FAILED.
    """
    now = now or timezone.now()
    event.attempts = (event.attempts or 0) + 1
    event.last_error = str(error)
    event.claim_token = None
    if event.attempts >= MAX_ATTEMPTS:
        event.status = EventStatus.FAILED
    else:
        event.status = EventStatus.PENDING
        event.next_run_at = now + backoff(event.attempts)
    event.save(update_fields=["attempts", "last_error", "claim_token", "status", "next_run_at", "updated_at"])
    return event


def requeue(event: Event, now=None) -> Event:
    """
    Put a FAILED event back in the queue. Every action runs again on
    reprocessing, so downstream records are duplicated.
    """
    if event.status != EventStatus.FAILED:
        raise InvalidEventState(f"Only FAILED events can be requeued (event is {event.status})")
    event.status = EventStatus.PENDING
    event.attempts = 0
    event.next_run_at = now or timezone.now()
    event.last_error = None
    event.claim_token = None
    event.save(update_fields=["status", "attempts", "next_run_at", "last_error", "claim_token", "updated_at"])
    logger.info("Requeued event %s (%s)", event.id, event.type)
    return event
