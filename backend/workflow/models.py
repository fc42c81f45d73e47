import secrets

from django.db import models
from common.models import BaseModel


class EventType(models.TextChoices):
    LEAD_CREATED = "lead.created"
    DEAL_UPDATED = "deal.updated"
    DEAL_STAGE_CHANGED = "deal.stage_changed"
    TICKET_CREATED = "ticket.created"
    PROPOSAL_APPROVED = "proposal.approved"
    HEALTH_SCORE_DROPPED = "health.score_dropped"
    RENEWAL_DUE_SOON = "renewal.due_soon"
    WORKFLOW_RUN = "workflow.run"


class TriggerType(models.TextChoices):
    LEAD_CREATED = "LEAD_CREATED"
    DEAL_STAGE_CHANGED = "DEAL_STAGE_CHANGED"
    TICKET_CREATED = "TICKET_CREATED"
    HEALTH_SCORE_DROPPED = "HEALTH_SCORE_DROPPED"
    RENEWAL_DUE_SOON = "RENEWAL_DUE_SOON"


class ActionType(models.TextChoices):
    CREATE_ACTIVITY = "CREATE_ACTIVITY"
    ASSIGN_OWNER = "ASSIGN_OWNER"
    CREATE_TICKET = "CREATE_TICKET"
    NOTIFY_IN_APP = "NOTIFY_IN_APP"
    UPDATE_DEAL_STAGE = "UPDATE_DEAL_STAGE"


class ConditionOperator(models.TextChoices):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"


class EventStatus(models.TextChoices):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class RunStatus(models.TextChoices):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


def generate_webhook_secret() -> str:
    return secrets.token_hex(16)


class Workflow(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="workflows")

    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, null=True)
    enabled = models.BooleanField(default=False)
    trigger_type = models.CharField(max_length=40, choices=TriggerType.choices)
    trigger_params = models.JSONField(default=dict, blank=True)
    conditions = models.JSONField(default=list, blank=True)  # [{"field": "priority", "op": "eq", "value": "urgent"}]
    actions = models.JSONField(default=list, blank=True)     # [{"type": "CREATE_TICKET", "payload": {...}}]
    created_by = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "trigger_type", "enabled"]),
            models.Index(fields=["tenant", "-created_at"]),
        ]

    def __str__(self):
        return self.name

    @property
    def trigger(self):
        return {"type": self.trigger_type, "params": self.trigger_params or {}}

    def parsed_conditions(self):
        from .schema import parse_conditions
        return parse_conditions(self.conditions)

    def parsed_actions(self):
        from .schema import parse_actions
        return parse_actions(self.actions)


class Event(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="automation_events")

    type = models.CharField(max_length=80)           # EventType value; unknown types are still accepted
    payload = models.JSONField(default=dict, blank=True)
    status = models.CharField(max_length=16, choices=EventStatus.choices, default=EventStatus.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    next_run_at = models.DateTimeField()
    last_error = models.TextField(blank=True, null=True)
    claim_token = models.UUIDField(blank=True, null=True, db_index=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "next_run_at"]),
            models.Index(fields=["tenant", "type", "-created_at"]),
        ]

    def __str__(self):
        return f"{self.type} [{self.status}]"


class WorkflowRun(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="workflow_runs")
    workflow = models.ForeignKey("workflow.Workflow", on_delete=models.SET_NULL, null=True, related_name="runs")
    event = models.ForeignKey("workflow.Event", on_delete=models.SET_NULL, blank=True, null=True, related_name="runs")

    status = models.CharField(max_length=16, choices=RunStatus.choices)
    trigger_event = models.TextField()               # JSON: {"triggerType": ..., "payload": ...}
    result = models.TextField(blank=True, null=True)
    error = models.TextField(blank=True, null=True)
    executed_at = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "-executed_at"]),
            models.Index(fields=["tenant", "workflow", "-executed_at"]),
        ]


class WebhookSubscription(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="webhook_subscriptions")

    event_type = models.CharField(max_length=80, choices=EventType.choices)
    url = models.URLField(max_length=500)
    secret = models.CharField(max_length=128, default=generate_webhook_secret)
    enabled = models.BooleanField(default=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "event_type", "enabled"])]

    @property
    def secret_hint(self) -> str:
        if len(self.secret or "") <= 6:
            return self.secret or ""
        return f"{self.secret[:4]}...{self.secret[-2:]}"
