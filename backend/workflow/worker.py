"""
Event worker: claims one due event per tick, routes it to the workflow engine,
fans it out to webhook subscribers and settles it as SUCCESS or retry/FAILED.

Several workers may poll the same table; `claim_next` guarantees that each
event has a single owner.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from django.conf import settings
from django.db import close_old_connections

from common.cache import invalidate_prefix

from .events import MAX_ATTEMPTS, claim_next, complete, fail
from .models import Event, EventStatus, EventType, TriggerType
from .services import trigger_automation
from .webhooks import dispatch

logger = logging.getLogger(__name__)


def _always(trigger: TriggerType) -> Callable[[dict], Optional[TriggerType]]:
    return lambda payload: trigger


def _when_stage_changed(payload: dict) -> Optional[TriggerType]:
    return TriggerType.DEAL_STAGE_CHANGED if payload.get("stageChanged") is True else None


# event type -> trigger resolver; types not listed only go to webhooks
EVENT_TRIGGERS: Dict[str, Callable[[dict], Optional[TriggerType]]] = {
    EventType.LEAD_CREATED.value: _always(TriggerType.LEAD_CREATED),
    EventType.DEAL_UPDATED.value: _when_stage_changed,
    EventType.DEAL_STAGE_CHANGED.value: _always(TriggerType.DEAL_STAGE_CHANGED),
    EventType.TICKET_CREATED.value: _always(TriggerType.TICKET_CREATED),
    EventType.HEALTH_SCORE_DROPPED.value: _always(TriggerType.HEALTH_SCORE_DROPPED),
    EventType.RENEWAL_DUE_SOON.value: _always(TriggerType.RENEWAL_DUE_SOON),
}


def resolve_trigger(event_type: str, payload: dict) -> Optional[TriggerType]:
    resolver = EVENT_TRIGGERS.get(event_type)
    return resolver(payload or {}) if resolver else None


def handle_event(event: Event) -> None:
    payload = event.payload or {}
    trigger = resolve_trigger(event.type, payload)
    if trigger is not None:
        initiated_by = payload.get("initiatedBy")
        trigger_automation(tenant=event.tenant, trigger_type=trigger, payload=payload,
                           initiated_by=initiated_by if isinstance(initiated_by, dict) else None, event=event)
    dispatch(event)


def process_next_event(now=None) -> bool:
    """Process at most one due event. Returns True when an event was claimed."""
    event = claim_next(now)
    if event is None:
        return False

    logger.info("Processing event %s (%s), attempt %s", event.id, event.type, event.attempts + 1)
    try:
        handle_event(event)
        invalidate_prefix(settings.AUTOMATION_CACHE_INVALIDATE_PREFIX)
    except Exception as exc:
        fail(event, str(exc) or exc.__class__.__name__)
        if event.status == EventStatus.FAILED:
            logger.error("Event %s (%s) failed permanently after %s attempts: %s",
                         event.id, event.type, MAX_ATTEMPTS, event.last_error)
        else:
            logger.warning("Event %s (%s) failed on attempt %s, retrying at %s: %s",
                           event.id, event.type, event.attempts, event.next_run_at.isoformat(), event.last_error)
        return True

    complete(event)
    return True


class WorkerHandle:
    """Cancellation handle for a worker started with `EventWorker.start()`."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event):
        self._thread = thread
        self._stop_event = stop_event

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        self._thread.join(timeout)


class EventWorker:
    def __init__(self, poll_interval_ms: Optional[int] = None):
        self.poll_interval_ms = poll_interval_ms or settings.EVENT_WORKER_POLL_INTERVAL_MS

    def tick(self) -> bool:
        try:
            return process_next_event()
        except Exception:
            logger.exception("Event worker tick failed")
            return False

    def _loop(self, stop_event: threading.Event) -> None:
        interval = self.poll_interval_ms / 1000.0
        while not stop_event.wait(interval):
            close_old_connections()
            self.tick()
        close_old_connections()

    def start(self) -> WorkerHandle:
        stop_event = threading.Event()
        thread = threading.Thread(target=self._loop, args=(stop_event,), name="event-worker", daemon=True)
        thread.start()
        logger.info("Event worker started (every %sms)", self.poll_interval_ms)
        return WorkerHandle(thread, stop_event)

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        logger.info("Event worker running (every %sms)", self.poll_interval_ms)
        self._loop(stop_event or threading.Event())
