"""
Customer health score.

Starts from a neutral 60 and moves with engagement signals over the last
30/45 days. The result is clamped to [0, 100].
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.utils import timezone

from crm.models import Activity, Opportunity
from support.models import Ticket

BASE_SCORE = 60
OPEN_TICKET_STATUSES = ("open", "pending")
URGENT_PRIORITIES = ("high", "urgent")


@dataclass
class HealthScore:
    score: int
    breakdown: List[Dict[str, Any]] = field(default_factory=list)


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return min(high, max(low, value))


def _item(label: str, score: int, notes: Optional[str] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {"label": label, "score": score}
    if notes:
        item["notes"] = notes
    return item


def calculate_health_score(*, tenant, customer, now=None) -> HealthScore:
    now = now or timezone.now()
    thirty_days_ago = now - timedelta(days=30)
    forty_five_days_ago = now - timedelta(days=45)

    activities = Activity.objects.filter(tenant=tenant, customer=customer)
    open_tickets = Ticket.objects.filter(tenant=tenant, customer=customer, status__in=OPEN_TICKET_STATUSES)

    recent_activities = activities.filter(created_at__gte=thirty_days_ago).count()
    open_count = open_tickets.count()
    urgent_count = open_tickets.filter(priority__in=URGENT_PRIORITIES).count()
    active_deals = Opportunity.objects.filter(tenant=tenant, customer=customer).exclude(stage="lost").count()

    score = BASE_SCORE
    breakdown: List[Dict[str, Any]] = []

    if recent_activities > 0:
        score += 10
        breakdown.append(_item("Recent activities", 10, f"{recent_activities} activities"))
    else:
        score -= 10
        breakdown.append(_item("No recent activities", -10))

    if active_deals > 0:
        score += 10
        breakdown.append(_item("Active deals", 10, f"{active_deals} deals"))

    if open_count > 3:
        score -= 10
        breakdown.append(_item("Ticket volume", -10, f"{open_count} open"))

    if urgent_count > 0:
        score -= 15
        breakdown.append(_item("Urgent tickets", -15, f"{urgent_count} high priority"))

    last_activity = activities.order_by("-created_at").first()
    if last_activity and last_activity.created_at < forty_five_days_ago:
        score -= 10
        breakdown.append(_item("Low engagement", -10))

    return HealthScore(score=_clamp(score), breakdown=breakdown)
