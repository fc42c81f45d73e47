"""
Workflow actions.

Each action reads only its own static config plus the original trigger payload
and returns a short human-readable result. Actions are not idempotent: running
one twice creates two activities, tickets or notifications.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.core.exceptions import ValidationError
from django.utils import timezone

from crm.models import Activity, Contact, Customer, Opportunity
from notificationsapp.utils import queue_notification
from platformapp.models import UserRole
from support.models import Ticket

from .exceptions import ReferencedEntityMissing
from .schema import (
    AssignOwner, CreateActivity, CreateTicket, NotifyInApp, OwnerSpec,
    UnknownAction, UpdateDealStage, WorkflowAction,
)

logger = logging.getLogger(__name__)


# entity -> (model, payload key, owner column, label)
ASSIGNABLE_ENTITIES = {
    "deal": (Opportunity, "dealId", "owner_user_id", "Deal"),
    "company": (Customer, "companyId", "owner_user_id", "Company"),
    "contact": (Contact, "contactId", "owner_user_id", "Contact"),
    "ticket": (Ticket, "ticketId", "assigned_to_user_id", "Ticket"),
}


# ---------- owner resolution ----------
def resolve_users_by_role(tenant, role: Optional[str]) -> List[str]:
    """
    User ids holding `role` in the tenant, oldest assignment first
    (ties broken by assignment id).
    """
    if not role:
        return []
    user_ids = (
        UserRole.objects
        .filter(tenant=tenant, role__name__iexact=role)
        .order_by("created_at", "id")
        .values_list("user_id", flat=True)
    )
    seen, ordered = set(), []
    for uid in user_ids:
        if uid not in seen:
            seen.add(uid)
            ordered.append(str(uid))
    return ordered


def resolve_owner(tenant, owner: OwnerSpec) -> Optional[str]:
    if owner.owner_id:
        return owner.owner_id
    users = resolve_users_by_role(tenant, owner.owner_role)
    return users[0] if users else None


# ---------- lookups ----------
def _scoped_pk(model, tenant, pk: Any, label: str):
    """Primary key of `model` row `pk` in the tenant; None when no id was given."""
    if not pk:
        return None
    try:
        found = model.objects.filter(tenant=tenant, pk=pk).values_list("pk", flat=True).first()
    except (ValidationError, ValueError):
        found = None
    if found is None:
        raise ReferencedEntityMissing(f"{label} {pk} not found")
    return found


def _update_scoped(model, tenant, pk: Any, label: str, **changes) -> None:
    try:
        updated = model.objects.filter(tenant=tenant, pk=pk).update(updated_at=timezone.now(), **changes)
    except ValidationError:
        updated = 0
    if not updated:
        raise ReferencedEntityMissing(f"{label} {pk} not found")


# ---------- handlers ----------
def _create_activity(tenant, action: CreateActivity, payload: Dict[str, Any]) -> str:
    due_at = None
    if action.due_in_minutes or action.due_in_days:
        due_at = timezone.now() + timedelta(minutes=action.due_in_minutes, days=action.due_in_days)

    activity = Activity.objects.create(
        tenant=tenant,
        kind="task",
        subject=action.subject,
        content=action.notes,
        due_at=due_at,
        customer_id=_scoped_pk(Customer, tenant, action.company_id or payload.get("companyId"), "Company"),
        contact_id=_scoped_pk(Contact, tenant, action.contact_id or payload.get("contactId"), "Contact"),
        opportunity_id=_scoped_pk(Opportunity, tenant, action.deal_id or payload.get("dealId"), "Deal"),
        owner_user_id=resolve_owner(tenant, action.owner),
    )
    return f"Activity {activity.id} created"


def _assign_owner(tenant, action: AssignOwner, payload: Dict[str, Any]) -> str:
    owner_id = resolve_owner(tenant, action.owner)
    if not owner_id:
        return "No owner found"

    target = ASSIGNABLE_ENTITIES.get(action.entity)
    if target is None:
        return "Owner assignment ignored"
    model, payload_key, owner_field, label = target
    pk = payload.get(payload_key)
    if not pk:
        return "Owner assignment ignored"

    _update_scoped(model, tenant, pk, label, **{owner_field: owner_id})
    return f"{label} owner assigned"


def _create_ticket(tenant, action: CreateTicket, payload: Dict[str, Any]) -> str:
    ticket = Ticket.objects.create(
        tenant=tenant,
        subject=action.title,
        description=action.description,
        status=action.status,
        priority=action.priority,
        customer_id=_scoped_pk(Customer, tenant, action.company_id or payload.get("companyId"), "Company"),
        contact_id=_scoped_pk(Contact, tenant, action.contact_id or payload.get("contactId"), "Contact"),
        assigned_to_user_id=resolve_owner(tenant, action.owner),
    )
    return f"Ticket {ticket.id} created"


def _notify_in_app(tenant, action: NotifyInApp, payload: Dict[str, Any]) -> str:
    entity = action.entity or payload.get("entity")
    entity_id = action.entity_id or payload.get("entityId")

    if action.user_id:
        queue_notification(tenant, action.title, action.message, to_user_id=action.user_id,
                           entity=entity, entity_id=entity_id)
        return "Notification created"

    recipients = resolve_users_by_role(tenant, action.role)
    for user_id in recipients:
        queue_notification(tenant, action.title, action.message, to_user_id=user_id,
                           entity=entity, entity_id=entity_id)
    return f"Notification sent to {len(recipients)} users"


def _update_deal_stage(tenant, action: UpdateDealStage, payload: Dict[str, Any]) -> str:
    deal_id = payload.get("dealId")
    if not deal_id:
        return "No deal to update"
    stage = action.stage or payload.get("stage")
    if not stage:
        return "No stage to apply"
    _update_scoped(Opportunity, tenant, deal_id, "Deal", stage=str(stage))
    return "Deal stage updated"


def _ignore(tenant, action: UnknownAction, payload: Dict[str, Any]) -> str:
    logger.debug("Ignoring unsupported action type %r", action.type)
    return "Action ignored"


HANDLERS = {
    CreateActivity: _create_activity,
    AssignOwner: _assign_owner,
    CreateTicket: _create_ticket,
    NotifyInApp: _notify_in_app,
    UpdateDealStage: _update_deal_stage,
    UnknownAction: _ignore,
}


def execute_action(*, tenant, action: WorkflowAction, payload: Dict[str, Any]) -> str:
    return HANDLERS[type(action)](tenant, action, payload or {})
