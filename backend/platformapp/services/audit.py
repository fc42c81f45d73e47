from __future__ import annotations
import uuid
from typing import Optional, Dict, Any
from platformapp.models import AuditLog, Tenant, UserRole

SYSTEM_ACTOR_ROLE = "ADMIN"

REDACT_KEYS = {"password", "token", "access", "refresh", "secret"}


def _sanitize(meta: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in (meta or {}).items():
        if k.lower() in REDACT_KEYS:
            out[k] = "***"
        else:
            out[k] = v
    return out


def _as_uuid(value: Any) -> Optional[str]:
    try:
        return str(uuid.UUID(str(value))) if value else None
    except ValueError:
        return None


def _first_admin_id(tenant: Tenant) -> Optional[str]:
    uid = (
        UserRole.objects.filter(tenant=tenant, role__name__iexact=SYSTEM_ACTOR_ROLE)
        .order_by("created_at", "id").values_list("user_id", flat=True).first()
    )
    return str(uid) if uid else None


def log_event(*, tenant: Tenant, user_id: Optional[str], action: str,
              entity: str, entity_id: str, meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    return AuditLog.objects.create(
        tenant=tenant,
        user_id=user_id,
        action=action[:80],
        entity=entity[:120],
        entity_id=str(entity_id)[:120],
        meta_json=_sanitize(meta or {}),
    )


def log_system_event(*, tenant: Tenant, entity: str, entity_id: str, summary: str,
                     initiated_by: Optional[Dict[str, Any]] = None,
                     meta: Optional[Dict[str, Any]] = None) -> AuditLog:
    """
    Audit entry written by background automation. Attributed to the user who
    initiated the originating mutation when known, else to the tenant's oldest
    ADMIN, else to the system (user_id=None).
    """
    if not isinstance(initiated_by, dict):
        initiated_by = {}
    user_id = _as_uuid(initiated_by.get("userId"))
    role = initiated_by.get("role")
    if user_id is None:
        user_id = _first_admin_id(tenant)
        role = SYSTEM_ACTOR_ROLE if user_id else None
    return log_event(
        tenant=tenant,
        user_id=user_id,
        action="UPDATE",
        entity=entity,
        entity_id=entity_id,
        meta={"summary": summary, "role": role, **(meta or {})},
    )
