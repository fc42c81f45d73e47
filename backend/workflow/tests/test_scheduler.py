from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.utils import timezone

from crm.models import Customer
from cs.health import HealthScore
from cs.models import Contract, CustomerSuccessProfile
from workflow.events import emit_event
from workflow.models import Event
from workflow.scheduler import crossed_below, run_health_job, run_renewal_job
from workflow.tasks import drain_events_task, run_health_job_task, run_renewal_job_task

pytestmark = pytest.mark.django_db


@pytest.fixture
def company(tenant):
    return Customer.objects.create(tenant=tenant, name="Umbrella")


def make_contract(tenant, company, ends_in_days, value="1200.00"):
    now = timezone.now()
    return Contract.objects.create(
        tenant=tenant, customer=company, start_at=now - timedelta(days=300),
        end_at=now + timedelta(days=ends_in_days), value=Decimal(value),
    )


@pytest.mark.parametrize("previous, current, expected", [
    (65, 55, True),
    (60, 59, True),
    (55, 50, False),
    (70, 60, False),
    (50, 70, False),
])
def test_crossed_below_threshold(previous, current, expected):
    assert crossed_below(previous, current, threshold=60) is expected


def test_renewal_job_emits_one_event_per_contract_in_window(tenant, company):
    soon = make_contract(tenant, company, ends_in_days=10)
    make_contract(tenant, company, ends_in_days=45)
    make_contract(tenant, company, ends_in_days=-1)

    summary = run_renewal_job()

    assert summary == {"processed": 1, "emitted": 1, "failed": 0}
    event = Event.objects.get(type="renewal.due_soon")
    assert event.tenant_id == tenant.id
    assert event.payload["companyId"] == str(company.id)
    assert event.payload["contractId"] == str(soon.id)
    assert event.payload["value"] == 1200.0
    assert event.payload["endAt"].endswith("Z")


def test_renewal_job_respects_notice_days(tenant, company, settings):
    make_contract(tenant, company, ends_in_days=45)
    settings.RENEWAL_NOTICE_DAYS = 60
    assert run_renewal_job()["emitted"] == 1
    assert run_renewal_job(notice_days=7)["processed"] == 0


def test_renewal_job_isolates_failures(tenant, company):
    make_contract(tenant, company, ends_in_days=3)
    make_contract(tenant, company, ends_in_days=4)

    calls = {"n": 0}

    def flaky_emit(**kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("broker down")
        return emit_event(**kwargs)

    with mock.patch("workflow.scheduler.emit_event", side_effect=flaky_emit):
        summary = run_renewal_job()

    assert summary == {"processed": 2, "emitted": 1, "failed": 1}
    assert Event.objects.filter(type="renewal.due_soon").count() == 1


def test_health_job_emits_only_on_downward_crossing(tenant, company):
    other = Customer.objects.create(tenant=tenant, name="Already low")
    dropping = CustomerSuccessProfile.objects.create(tenant=tenant, customer=company, health_score=65)
    low = CustomerSuccessProfile.objects.create(tenant=tenant, customer=other, health_score=55)

    def fake_score(*, tenant, customer, now=None):
        return HealthScore(score=55 if customer.pk == company.pk else 50, breakdown=[{"label": "x", "score": -10}])

    with mock.patch("workflow.scheduler.calculate_health_score", side_effect=fake_score):
        summary = run_health_job()

    assert summary == {"processed": 2, "emitted": 1, "failed": 0}
    dropping.refresh_from_db()
    low.refresh_from_db()
    assert dropping.health_score == 55
    assert low.health_score == 50
    assert dropping.health_breakdown == [{"label": "x", "score": -10}]
    event = Event.objects.get(type="health.score_dropped")
    assert event.payload == {"companyId": str(company.id), "score": 55}


def test_health_job_isolates_failures(tenant, company):
    other = Customer.objects.create(tenant=tenant, name="Fine")
    CustomerSuccessProfile.objects.create(tenant=tenant, customer=company, health_score=80)
    healthy = CustomerSuccessProfile.objects.create(tenant=tenant, customer=other, health_score=80)

    def fake_score(*, tenant, customer, now=None):
        if customer.pk == company.pk:
            raise RuntimeError("bad data")
        return HealthScore(score=40)

    with mock.patch("workflow.scheduler.calculate_health_score", side_effect=fake_score):
        summary = run_health_job()

    assert summary == {"processed": 2, "emitted": 1, "failed": 1}
    healthy.refresh_from_db()
    assert healthy.health_score == 40


def test_celery_tasks_run_jobs(tenant, company):
    make_contract(tenant, company, ends_in_days=5)
    CustomerSuccessProfile.objects.create(tenant=tenant, customer=company, health_score=60)

    assert run_renewal_job_task.delay().get()["emitted"] == 1
    assert run_health_job_task.delay().get()["processed"] == 1
    # no workflows or subscribers: every queued event just completes
    assert drain_events_task.delay().get() == Event.objects.count()
