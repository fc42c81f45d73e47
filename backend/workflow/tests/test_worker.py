import threading
from datetime import timedelta
from unittest import mock

import pytest
from django.core.management import call_command
from django.utils import timezone

from common.cache import get_cached, set_cached
from crm.models import Activity
from workflow.events import emit_event, requeue
from workflow.models import Event, EventStatus, RunStatus, TriggerType, WebhookSubscription, Workflow, WorkflowRun
from workflow.worker import EventWorker, process_next_event, resolve_trigger

pytestmark = pytest.mark.django_db


@pytest.fixture
def lead_workflow(tenant):
    return Workflow.objects.create(
        tenant=tenant, name="Lead follow-up", enabled=True, trigger_type=TriggerType.LEAD_CREATED,
        actions=[{"type": "CREATE_ACTIVITY", "payload": {"subject": "Say hello"}}],
    )


@pytest.mark.parametrize("event_type, payload, expected", [
    ("lead.created", {}, TriggerType.LEAD_CREATED),
    ("deal.updated", {"stageChanged": True}, TriggerType.DEAL_STAGE_CHANGED),
    ("deal.updated", {"stageChanged": False}, None),
    ("deal.updated", {}, None),
    ("deal.stage_changed", {}, TriggerType.DEAL_STAGE_CHANGED),
    ("ticket.created", {}, TriggerType.TICKET_CREATED),
    ("health.score_dropped", {}, TriggerType.HEALTH_SCORE_DROPPED),
    ("renewal.due_soon", {}, TriggerType.RENEWAL_DUE_SOON),
    ("proposal.approved", {}, None),
    ("workflow.run", {}, None),
])
def test_event_type_to_trigger_table(event_type, payload, expected):
    assert resolve_trigger(event_type, payload) == expected


def test_idle_tick_returns_false():
    assert EventWorker(poll_interval_ms=10).tick() is False


def test_process_event_runs_workflows_and_completes(tenant, lead_workflow):
    event = emit_event(tenant=tenant, event_type="lead.created", payload={})
    set_cached("bi:pipeline:summary", {"total": 1})
    set_cached("other:key", "kept")

    assert process_next_event() is True

    event.refresh_from_db()
    assert event.status == EventStatus.SUCCESS
    run = WorkflowRun.objects.get(workflow=lead_workflow)
    assert run.status == RunStatus.SUCCESS
    assert run.event_id == event.id
    assert Activity.objects.filter(subject="Say hello").count() == 1
    assert get_cached("bi:pipeline:summary") is None
    assert get_cached("other:key") == "kept"


def test_workflow_run_announcement_is_processed_as_webhook_only(tenant, lead_workflow):
    emit_event(tenant=tenant, event_type="lead.created")
    process_next_event()

    announcement = Event.objects.get(type="workflow.run")
    with mock.patch("workflow.worker.trigger_automation") as trigger:
        assert process_next_event() is True
    trigger.assert_not_called()
    announcement.refresh_from_db()
    assert announcement.status == EventStatus.SUCCESS


def test_action_failure_schedules_retry(tenant):
    Workflow.objects.create(
        tenant=tenant, name="Stage bump", enabled=True, trigger_type=TriggerType.LEAD_CREATED,
        actions=[{"type": "UPDATE_DEAL_STAGE", "payload": {"stage": "won"}}],
    )
    event = emit_event(tenant=tenant, event_type="lead.created", payload={"dealId": "00000000-0000-0000-0000-000000000001"})
    before = timezone.now()

    process_next_event()

    event.refresh_from_db()
    assert event.status == EventStatus.PENDING
    assert event.attempts == 1
    assert "not found" in event.last_error
    assert event.next_run_at >= before + timedelta(minutes=2)


def test_webhook_failure_retries_event_and_duplicates_actions(tenant, lead_workflow):
    event = emit_event(tenant=tenant, event_type="lead.created")
    WebhookSubscription.objects.create(tenant=tenant, event_type="lead.created", url="https://hooks.example/x")

    with mock.patch("workflow.webhooks.requests.post", return_value=mock.Mock(status_code=503, text="busy")):
        process_next_event()

    event.refresh_from_db()
    assert event.status == EventStatus.PENDING
    assert event.attempts == 1
    assert "busy" in event.last_error
    assert Activity.objects.count() == 1

    with mock.patch("workflow.webhooks.requests.post", return_value=mock.Mock(status_code=200, text="")):
        while process_next_event(now=event.next_run_at):
            pass

    event.refresh_from_db()
    assert event.status == EventStatus.SUCCESS
    # at-least-once: the retry ran every action again
    assert Activity.objects.count() == 2
    assert WorkflowRun.objects.filter(workflow=lead_workflow, event=event).count() == 2


def test_requeued_failed_event_reexecutes_actions(tenant, lead_workflow):
    event = emit_event(tenant=tenant, event_type="lead.created")
    process_next_event()
    assert Activity.objects.count() == 1

    Event.objects.filter(pk=event.pk).update(status=EventStatus.FAILED, attempts=5)
    event.refresh_from_db()
    requeue(event)
    while process_next_event():
        pass

    assert Activity.objects.count() == 2


def test_tick_logs_and_survives_loop_errors():
    with mock.patch("workflow.worker.process_next_event", side_effect=RuntimeError("db gone")), \
            mock.patch("workflow.worker.logger") as log:
        assert EventWorker(poll_interval_ms=10).tick() is False
    log.exception.assert_called_once_with("Event worker tick failed")


def test_start_returns_handle_that_stops_the_loop():
    ticked = threading.Event()

    def fake_process(now=None):
        ticked.set()
        return False

    with mock.patch("workflow.worker.process_next_event", side_effect=fake_process):
        handle = EventWorker(poll_interval_ms=5).start()
        assert ticked.wait(2)
        handle.stop(timeout=2)

    assert handle.running is False


def test_run_event_worker_once_command(tenant, lead_workflow, capsys):
    emit_event(tenant=tenant, event_type="lead.created")
    call_command("run_event_worker", "--once")
    assert "Processed 1 event" in capsys.readouterr().out
    assert WorkflowRun.objects.count() == 1


def test_non_mapping_initiator_does_not_fail_event(tenant, lead_workflow):
    event = emit_event(tenant=tenant, event_type="lead.created", payload={"initiatedBy": "u-123"})

    assert process_next_event() is True

    event.refresh_from_db()
    assert event.status == EventStatus.SUCCESS
    assert event.attempts == 0
    assert Activity.objects.count() == 1
    assert WorkflowRun.objects.filter(event=event, status=RunStatus.SUCCESS).count() == 1
