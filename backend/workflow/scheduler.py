"""
Time-driven event producers, run daily by Celery beat (see workflow.tasks).

Every item is handled in its own transaction and its own try block so one
bad contract or profile never stops the rest of the batch.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from cs.health import calculate_health_score
from cs.models import Contract, CustomerSuccessProfile

from .events import emit_event
from .models import EventType
from .webhooks import iso_timestamp

logger = logging.getLogger(__name__)


def _summary() -> Dict[str, int]:
    return {"processed": 0, "emitted": 0, "failed": 0}


def crossed_below(previous: Optional[int], current: int, threshold: Optional[int] = None) -> bool:
    """True only on a downward crossing: at/above the threshold before, below it now."""
    threshold = settings.HEALTH_SCORE_THRESHOLD if threshold is None else threshold
    if previous is None:
        return False
    return previous >= threshold and current < threshold


def run_renewal_job(now=None, notice_days: Optional[int] = None) -> Dict[str, int]:
    now = now or timezone.now()
    days = settings.RENEWAL_NOTICE_DAYS if notice_days is None else notice_days
    window_end = now + timedelta(days=days)

    summary = _summary()
    contracts = Contract.objects.filter(end_at__gte=now, end_at__lte=window_end).order_by("end_at")
    for contract in contracts:
        summary["processed"] += 1
        try:
            emit_event(
                tenant_id=contract.tenant_id,
                event_type=EventType.RENEWAL_DUE_SOON,
                payload={
                    "companyId": str(contract.customer_id),
                    "contractId": str(contract.id),
                    "endAt": iso_timestamp(contract.end_at),
                    "value": float(contract.value or 0),
                },
            )
            summary["emitted"] += 1
        except Exception:
            summary["failed"] += 1
            logger.exception("Renewal job failed for contract %s", contract.id)

    logger.info("Renewal job: %(processed)s contracts, %(emitted)s events, %(failed)s failures", summary)
    return summary


def _refresh_profile(profile: CustomerSuccessProfile, now) -> bool:
    previous = profile.health_score
    health = calculate_health_score(tenant=profile.tenant, customer=profile.customer, now=now)

    with transaction.atomic():
        profile.health_score = health.score
        profile.health_breakdown = health.breakdown
        profile.save(update_fields=["health_score", "health_breakdown", "updated_at"])
        if not crossed_below(previous, health.score):
            return False
        emit_event(
            tenant_id=profile.tenant_id,
            event_type=EventType.HEALTH_SCORE_DROPPED,
            payload={"companyId": str(profile.customer_id), "score": health.score},
        )
    return True


def run_health_job(now=None) -> Dict[str, int]:
    now = now or timezone.now()
    summary = _summary()
    profiles = CustomerSuccessProfile.objects.select_related("tenant", "customer").order_by("created_at")
    for profile in profiles:
        summary["processed"] += 1
        try:
            if _refresh_profile(profile, now):
                summary["emitted"] += 1
        except Exception:
            summary["failed"] += 1
            logger.exception("Health job failed for profile %s", profile.id)

    logger.info("Health job: %(processed)s profiles, %(emitted)s drops, %(failed)s failures", summary)
    return summary
