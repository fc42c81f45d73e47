from datetime import timedelta

import pytest
from django.utils import timezone

from crm.models import Activity, Customer, Opportunity
from cs.health import BASE_SCORE, calculate_health_score
from support.models import Ticket

pytestmark = pytest.mark.django_db


@pytest.fixture
def company(tenant):
    return Customer.objects.create(tenant=tenant, name="Initech")


def labels(health):
    return [item["label"] for item in health.breakdown]


def test_quiet_account_loses_points(tenant, company):
    health = calculate_health_score(tenant=tenant, customer=company)
    assert health.score == BASE_SCORE - 10
    assert labels(health) == ["No recent activities"]


def test_recent_activity_and_open_deal_raise_score(tenant, company):
    Activity.objects.create(tenant=tenant, customer=company, subject="Kickoff call")
    Opportunity.objects.create(tenant=tenant, customer=company, name="Expansion", stage="proposal")
    Opportunity.objects.create(tenant=tenant, customer=company, name="Old", stage="lost")

    health = calculate_health_score(tenant=tenant, customer=company)

    assert health.score == 80
    assert health.breakdown[1] == {"label": "Active deals", "score": 10, "notes": "1 deals"}


def test_ticket_pressure_and_stale_engagement(tenant, company):
    for i in range(4):
        Ticket.objects.create(tenant=tenant, customer=company, subject=f"Bug {i}",
                              priority="urgent" if i == 0 else "low")
    Ticket.objects.create(tenant=tenant, customer=company, subject="Done", status="closed", priority="urgent")
    old = Activity.objects.create(tenant=tenant, customer=company, subject="Last touch")
    Activity.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=50))

    health = calculate_health_score(tenant=tenant, customer=company)

    assert labels(health) == ["No recent activities", "Ticket volume", "Urgent tickets", "Low engagement"]
    assert health.score == BASE_SCORE - 10 - 10 - 15 - 10


def test_other_tenants_data_is_ignored(tenant, other_tenant, company):
    Ticket.objects.create(tenant=other_tenant, customer=company, subject="Leak", priority="urgent")
    health = calculate_health_score(tenant=tenant, customer=company)
    assert "Urgent tickets" not in labels(health)
