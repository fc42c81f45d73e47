import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from crm.models import Activity, Customer, Opportunity
from notificationsapp.models import NotificationDispatch
from platformapp.models import UserRole
from support.models import Ticket
from workflow.actions import execute_action, resolve_owner, resolve_users_by_role
from workflow.exceptions import ReferencedEntityMissing
from workflow.schema import OwnerSpec, parse_action

pytestmark = pytest.mark.django_db


@pytest.fixture
def company(tenant):
    return Customer.objects.create(tenant=tenant, name="Initech")


@pytest.fixture
def deal(tenant, company):
    return Opportunity.objects.create(tenant=tenant, customer=company, name="Initech renewal", stage="proposal")


def run(tenant, raw, payload=None):
    return execute_action(tenant=tenant, action=parse_action(raw), payload=payload or {})


def test_owner_resolution_prefers_explicit_owner(tenant, assign_role):
    assign_role(tenant, uuid.uuid4(), "MANAGER")
    explicit = str(uuid.uuid4())
    assert resolve_owner(tenant, OwnerSpec(owner_id=explicit, owner_role="MANAGER")) == explicit


def test_owner_resolution_picks_oldest_role_assignment(tenant, other_tenant, assign_role):
    first, second = uuid.uuid4(), uuid.uuid4()
    assign_role(other_tenant, uuid.uuid4(), "MANAGER")
    older = assign_role(tenant, first, "MANAGER")
    assign_role(tenant, second, "MANAGER")
    UserRole.objects.filter(pk=older.pk).update(created_at=timezone.now() - timedelta(days=3))

    assert resolve_users_by_role(tenant, "MANAGER") == [str(first), str(second)]
    assert resolve_owner(tenant, OwnerSpec(owner_role="manager")) == str(first)
    assert resolve_owner(tenant, OwnerSpec(owner_role="ADMIN")) is None


def test_create_activity_uses_payload_ids_and_due_offsets(tenant, company, deal, assign_role):
    owner = uuid.uuid4()
    assign_role(tenant, owner, "USER")
    before = timezone.now()

    result = run(tenant, {
        "type": "CREATE_ACTIVITY",
        "payload": {"subject": "Call back", "dueInMinutes": 15, "dueInDays": 1, "ownerRole": "USER"},
    }, payload={"companyId": str(company.id), "dealId": str(deal.id)})

    activity = Activity.objects.get(tenant=tenant)
    assert result == f"Activity {activity.id} created"
    assert activity.kind == "task"
    assert activity.subject == "Call back"
    assert activity.customer_id == company.id
    assert activity.opportunity_id == deal.id
    assert activity.owner_user_id == owner
    assert before + timedelta(days=1, minutes=15) <= activity.due_at <= timezone.now() + timedelta(days=1, minutes=15)


def test_create_activity_defaults(tenant):
    run(tenant, {"type": "CREATE_ACTIVITY", "payload": {}})
    activity = Activity.objects.get(tenant=tenant)
    assert activity.subject == "Automated task"
    assert activity.due_at is None
    assert activity.owner_user_id is None


def test_create_activity_with_missing_company_raises(tenant):
    with pytest.raises(ReferencedEntityMissing):
        run(tenant, {"type": "CREATE_ACTIVITY", "payload": {}}, payload={"companyId": str(uuid.uuid4())})
    assert not Activity.objects.exists()


def test_assign_owner_on_ticket(tenant, assign_role):
    owner = uuid.uuid4()
    assign_role(tenant, owner, "USER")
    ticket = Ticket.objects.create(tenant=tenant, subject="Down", priority="urgent")

    result = run(tenant, {"type": "ASSIGN_OWNER", "payload": {"entity": "ticket", "ownerRole": "USER"}},
                 payload={"ticketId": str(ticket.id)})

    ticket.refresh_from_db()
    assert result == "Ticket owner assigned"
    assert ticket.assigned_to_user_id == owner


def test_assign_owner_without_candidates(tenant, deal):
    result = run(tenant, {"type": "ASSIGN_OWNER", "payload": {"entity": "deal", "ownerRole": "USER"}},
                 payload={"dealId": str(deal.id)})
    assert result == "No owner found"


def test_assign_owner_without_entity_id_is_ignored(tenant):
    result = run(tenant, {"type": "ASSIGN_OWNER", "payload": {"entity": "deal", "ownerId": str(uuid.uuid4())}})
    assert result == "Owner assignment ignored"


def test_assign_owner_for_deal_in_other_tenant_raises(tenant, other_tenant):
    foreign = Opportunity.objects.create(tenant=other_tenant, name="Not ours")
    with pytest.raises(ReferencedEntityMissing):
        run(tenant, {"type": "ASSIGN_OWNER", "payload": {"entity": "deal", "ownerId": str(uuid.uuid4())}},
            payload={"dealId": str(foreign.id)})


def test_create_ticket_defaults(tenant, company):
    result = run(tenant, {"type": "CREATE_TICKET", "payload": {}}, payload={"companyId": str(company.id)})

    ticket = Ticket.objects.get(tenant=tenant)
    assert result == f"Ticket {ticket.id} created"
    assert ticket.subject == "Automated ticket"
    assert ticket.status == "open"
    assert ticket.priority == "medium"
    assert ticket.customer_id == company.id


def test_notify_in_app_by_role_sends_one_per_user(tenant, assign_role):
    for _ in range(3):
        assign_role(tenant, uuid.uuid4(), "MANAGER")

    result = run(tenant, {"type": "NOTIFY_IN_APP", "payload": {"title": "Heads up", "message": "Hi", "role": "MANAGER"}},
                 payload={"entity": "deal", "entityId": "d-1"})

    assert result == "Notification sent to 3 users"
    notes = NotificationDispatch.objects.filter(tenant=tenant)
    assert notes.count() == 3
    assert set(notes.values_list("channel", flat=True)) == {"in_app"}
    assert set(notes.values_list("entity_id", flat=True)) == {"d-1"}


def test_notify_in_app_to_single_user(tenant):
    user_id = str(uuid.uuid4())
    result = run(tenant, {"type": "NOTIFY_IN_APP", "payload": {"title": "Hi", "userId": user_id}})
    assert result == "Notification created"
    assert str(NotificationDispatch.objects.get().to_user_id) == user_id


def test_update_deal_stage(tenant, deal):
    result = run(tenant, {"type": "UPDATE_DEAL_STAGE", "payload": {}}, payload={"dealId": str(deal.id), "stage": "won"})
    deal.refresh_from_db()
    assert result == "Deal stage updated"
    assert deal.stage == "won"


def test_update_deal_stage_without_deal(tenant):
    assert run(tenant, {"type": "UPDATE_DEAL_STAGE", "payload": {"stage": "won"}}) == "No deal to update"


def test_unknown_action_is_ignored(tenant):
    assert run(tenant, {"type": "SEND_FAX", "payload": {"to": "555"}}) == "Action ignored"
