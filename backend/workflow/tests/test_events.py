from datetime import timedelta

import pytest
from django.db.models.query import QuerySet
from django.utils import timezone

from workflow.events import MAX_ATTEMPTS, backoff, claim_next, complete, emit_event, fail, requeue
from workflow.exceptions import InvalidEventState
from workflow.models import Event, EventStatus, EventType

pytestmark = pytest.mark.django_db


def test_emit_event_stores_pending_event(tenant):
    before = timezone.now()
    event = emit_event(tenant=tenant, event_type=EventType.LEAD_CREATED, payload={"companyId": "c1"})

    event.refresh_from_db()
    assert event.type == "lead.created"
    assert event.status == EventStatus.PENDING
    assert event.attempts == 0
    assert event.payload == {"companyId": "c1"}
    assert before <= event.next_run_at <= timezone.now()


def test_emit_event_with_delay_is_not_claimable_yet(tenant):
    emit_event(tenant=tenant, event_type="lead.created", delay_ms=60_000)

    assert claim_next() is None
    assert claim_next(now=timezone.now() + timedelta(minutes=2)) is not None


def test_claim_next_takes_oldest_due_event(tenant):
    now = timezone.now()
    late = emit_event(tenant=tenant, event_type="lead.created")
    early = emit_event(tenant=tenant, event_type="ticket.created")
    Event.objects.filter(pk=late.pk).update(next_run_at=now - timedelta(minutes=1))
    Event.objects.filter(pk=early.pk).update(next_run_at=now - timedelta(minutes=5))

    claimed = claim_next(now)

    assert claimed.pk == early.pk
    assert claimed.status == EventStatus.PROCESSING
    assert claimed.claim_token is not None


def test_each_pending_event_is_claimed_exactly_once(tenant):
    """
    Sequential pollers drain the queue without repeats. Contention between
    worker processes rests on the single conditional UPDATE in claim_next;
    the race test below forces that losing branch.
    """
    ids = {emit_event(tenant=tenant, event_type="lead.created").pk for _ in range(5)}

    claimed = []
    while True:
        event = claim_next()
        if event is None:
            break
        claimed.append(event.pk)

    assert sorted(claimed) == sorted(ids)
    assert len(set(claimed)) == len(claimed)
    assert not Event.objects.filter(status=EventStatus.PENDING).exists()


def test_claim_loses_race_when_row_already_taken(tenant, monkeypatch):
    """A competing poller flips the row between selection and update: nothing is claimed."""
    event = emit_event(tenant=tenant, event_type="lead.created")
    original_update = QuerySet.update

    def racing_update(qs, **kwargs):
        monkeypatch.setattr(QuerySet, "update", original_update)
        Event.objects.filter(pk=event.pk).update(status=EventStatus.PROCESSING)
        return original_update(qs, **kwargs)

    monkeypatch.setattr(QuerySet, "update", racing_update)

    assert claim_next() is None
    event.refresh_from_db()
    assert event.status == EventStatus.PROCESSING
    assert event.claim_token is None


def test_complete_marks_success_and_clears_error(tenant):
    emit_event(tenant=tenant, event_type="lead.created")
    event = claim_next()
    event.last_error = "boom"

    complete(event)

    event.refresh_from_db()
    assert event.status == EventStatus.SUCCESS
    assert event.last_error is None


@pytest.mark.parametrize("attempts, minutes", [(1, 2), (2, 4), (3, 8), (5, 32), (6, 60), (10, 60)])
def test_backoff_is_capped_exponential(attempts, minutes):
    assert backoff(attempts) == timedelta(minutes=minutes)


def test_fail_reschedules_with_backoff_until_max_attempts(tenant):
    emit_event(tenant=tenant, event_type="lead.created")
    now = timezone.now()
    event = claim_next(now)

    for attempt in range(1, MAX_ATTEMPTS):
        fail(event, "boom", now=now)
        event.refresh_from_db()
        assert event.attempts == attempt
        assert event.status == EventStatus.PENDING
        assert event.last_error == "boom"
        assert event.next_run_at == now + timedelta(minutes=min(60, 2 ** attempt))
        event = claim_next(now=event.next_run_at)

    fail(event, "final", now=now)
    event.refresh_from_db()
    assert event.attempts == MAX_ATTEMPTS
    assert event.status == EventStatus.FAILED
    assert event.last_error == "final"
    assert claim_next(now=now + timedelta(days=1)) is None


def test_requeue_resets_failed_event(tenant):
    event = emit_event(tenant=tenant, event_type="lead.created")
    Event.objects.filter(pk=event.pk).update(status=EventStatus.FAILED, attempts=5, last_error="boom")
    event.refresh_from_db()

    requeue(event)

    event.refresh_from_db()
    assert event.status == EventStatus.PENDING
    assert event.attempts == 0
    assert event.last_error is None
    assert claim_next().pk == event.pk


def test_requeue_rejects_events_that_are_not_failed(tenant):
    event = emit_event(tenant=tenant, event_type="lead.created")
    with pytest.raises(InvalidEventState):
        requeue(event)
