"""Built-in workflow templates offered by `workflows/library/`."""
from typing import Any, Dict, List, Optional

WORKFLOW_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "lead-first-contact",
        "name": "New lead - first contact",
        "description": "Create a quick follow-up and notify Sales.",
        "trigger": {"type": "LEAD_CREATED"},
        "conditions": [],
        "actions": [
            {
                "type": "CREATE_ACTIVITY",
                "payload": {
                    "subject": "First contact within 15 minutes",
                    "dueInMinutes": 15,
                    "notes": "Automation: prioritise the first contact",
                    "ownerRole": "USER",
                },
            },
            {
                "type": "NOTIFY_IN_APP",
                "payload": {
                    "title": "New lead",
                    "message": "A new lead is waiting for first contact.",
                    "role": "USER",
                },
            },
        ],
    },
    {
        "id": "deal-stale-reminder",
        "name": "Stalled deal - follow-up",
        "description": "Create a follow-up for deals after a stage change.",
        "trigger": {"type": "DEAL_STAGE_CHANGED"},
        "conditions": [{"field": "stage", "op": "neq", "value": "won"}],
        "actions": [
            {
                "type": "CREATE_ACTIVITY",
                "payload": {
                    "subject": "Deal follow-up",
                    "dueInDays": 7,
                    "notes": "Automation: check whether the deal has stalled.",
                    "ownerRole": "USER",
                },
            },
            {
                "type": "NOTIFY_IN_APP",
                "payload": {
                    "title": "Deal follow-up",
                    "message": "The deal changed stage. Schedule a follow-up in 7 days.",
                    "role": "USER",
                },
            },
        ],
    },
    {
        "id": "ticket-urgent-assignment",
        "name": "Urgent ticket - assign and notify",
        "description": "Assign urgent tickets and alert the manager.",
        "trigger": {"type": "TICKET_CREATED"},
        "conditions": [{"field": "priority", "op": "eq", "value": "urgent"}],
        "actions": [
            {
                "type": "ASSIGN_OWNER",
                "payload": {"entity": "ticket", "ownerRole": "USER"},
            },
            {
                "type": "NOTIFY_IN_APP",
                "payload": {
                    "title": "Urgent ticket",
                    "message": "An urgent ticket was created and assigned.",
                    "role": "MANAGER",
                },
            },
        ],
    },
    {
        "id": "health-drop",
        "name": "Health dropped - CS alert",
        "description": "Create a CS activity and alert the manager when health drops.",
        "trigger": {"type": "HEALTH_SCORE_DROPPED"},
        "conditions": [{"field": "score", "op": "lt", "value": 60}],
        "actions": [
            {
                "type": "CREATE_ACTIVITY",
                "payload": {
                    "subject": "Health check-in",
                    "dueInDays": 1,
                    "notes": "Automation: health score dropped below 60.",
                    "ownerRole": "MANAGER",
                },
            },
            {
                "type": "NOTIFY_IN_APP",
                "payload": {
                    "title": "Health score alert",
                    "message": "The customer's health score dropped below 60.",
                    "role": "MANAGER",
                },
            },
        ],
    },
    {
        "id": "renewal-30-days",
        "name": "Renewal in 30 days",
        "description": "Prepare renewal activities and alerts.",
        "trigger": {"type": "RENEWAL_DUE_SOON"},
        "conditions": [],
        "actions": [
            {
                "type": "CREATE_ACTIVITY",
                "payload": {
                    "subject": "Renewal outreach",
                    "dueInDays": 2,
                    "notes": "Automation: renewal coming up.",
                    "ownerRole": "MANAGER",
                },
            },
            {
                "type": "NOTIFY_IN_APP",
                "payload": {
                    "title": "Renewal coming up",
                    "message": "A renewal is due in 30 days.",
                    "role": "MANAGER",
                },
            },
        ],
    },
]


def get_template(template_id: str) -> Optional[Dict[str, Any]]:
    return next((t for t in WORKFLOW_TEMPLATES if t["id"] == template_id), None)
