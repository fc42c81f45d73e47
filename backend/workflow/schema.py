"""
Typed views over the JSON stored on `Workflow.conditions` and `Workflow.actions`.

Stored documents keep their camelCase keys (`dueInMinutes`, `ownerRole`, ...) so
existing rows and API clients stay compatible; everything past this module works
with the frozen dataclasses below.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .models import ActionType


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any = None

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "Condition":
        # "operator" is accepted as an alias of "op"
        op = raw.get("op", raw.get("operator", ""))
        return cls(field=str(raw.get("field", "")), op=str(op or ""), value=raw.get("value"))


@dataclass(frozen=True)
class OwnerSpec:
    owner_id: Optional[str] = None
    owner_role: Optional[str] = None


@dataclass(frozen=True)
class CreateActivity:
    subject: str = "Automated task"
    notes: Optional[str] = None
    due_in_minutes: float = 0
    due_in_days: float = 0
    owner: OwnerSpec = field(default_factory=OwnerSpec)
    company_id: Optional[str] = None
    contact_id: Optional[str] = None
    deal_id: Optional[str] = None


@dataclass(frozen=True)
class AssignOwner:
    entity: str = ""
    owner: OwnerSpec = field(default_factory=OwnerSpec)


@dataclass(frozen=True)
class CreateTicket:
    title: str = "Automated ticket"
    description: Optional[str] = None
    status: str = "open"
    priority: str = "medium"
    owner: OwnerSpec = field(default_factory=OwnerSpec)
    company_id: Optional[str] = None
    contact_id: Optional[str] = None


@dataclass(frozen=True)
class NotifyInApp:
    title: str = "Notification"
    message: str = ""
    user_id: Optional[str] = None
    role: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateDealStage:
    stage: Optional[str] = None


@dataclass(frozen=True)
class UnknownAction:
    type: str
    payload: Dict[str, Any] = field(default_factory=dict)


WorkflowAction = Union[CreateActivity, AssignOwner, CreateTicket, NotifyInApp, UpdateDealStage, UnknownAction]


def _text(value: Any, default: Optional[str] = None) -> Optional[str]:
    if value is None or value == "":
        return default
    return str(value)


def _number(value: Any) -> float:
    """`Number(x) || 0`: anything unparsable or non-finite counts as zero."""
    if value is None or isinstance(value, bool):
        return float(value or 0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _owner(data: Dict[str, Any]) -> OwnerSpec:
    return OwnerSpec(owner_id=_text(data.get("ownerId")), owner_role=_text(data.get("ownerRole")))


def parse_action(raw: Dict[str, Any]) -> WorkflowAction:
    action_type = str(raw.get("type", ""))
    data = raw.get("payload") or {}
    if not isinstance(data, dict):
        data = {}

    if action_type == ActionType.CREATE_ACTIVITY:
        return CreateActivity(
            subject=_text(data.get("subject"), "Automated task"),
            notes=_text(data.get("notes")),
            due_in_minutes=_number(data.get("dueInMinutes")),
            due_in_days=_number(data.get("dueInDays")),
            owner=_owner(data),
            company_id=_text(data.get("companyId")),
            contact_id=_text(data.get("contactId")),
            deal_id=_text(data.get("dealId")),
        )
    if action_type == ActionType.ASSIGN_OWNER:
        return AssignOwner(entity=str(data.get("entity") or ""), owner=_owner(data))
    if action_type == ActionType.CREATE_TICKET:
        return CreateTicket(
            title=_text(data.get("title"), "Automated ticket"),
            description=_text(data.get("description")),
            status=_text(data.get("status"), "open"),
            priority=_text(data.get("priority"), "medium"),
            owner=_owner(data),
            company_id=_text(data.get("companyId")),
            contact_id=_text(data.get("contactId")),
        )
    if action_type == ActionType.NOTIFY_IN_APP:
        return NotifyInApp(
            title=_text(data.get("title"), "Notification"),
            message=_text(data.get("message"), ""),
            user_id=_text(data.get("userId")),
            role=_text(data.get("role")),
            entity=_text(data.get("entity")),
            entity_id=_text(data.get("entityId")),
        )
    if action_type == ActionType.UPDATE_DEAL_STAGE:
        return UpdateDealStage(stage=_text(data.get("stage")))
    return UnknownAction(type=action_type, payload=dict(data))


def parse_conditions(raw_conditions) -> List[Condition]:
    return [Condition.from_json(c) for c in (raw_conditions or []) if isinstance(c, dict)]


def parse_actions(raw_actions) -> List[WorkflowAction]:
    return [parse_action(a) for a in (raw_actions or []) if isinstance(a, dict)]
