# backend/platformapp/permissions.py
from __future__ import annotations
from typing import Optional, Iterable

from django.core.exceptions import ValidationError
from django.db.models import Q
from rest_framework.permissions import BasePermission
from django.contrib.auth.models import AnonymousUser

from platformapp.models import UserRole


ADMIN_ROLE_NAMES = ("owner", "admin")


# --------------------------
# Helpers
# --------------------------
def get_request_tenant_id(request) -> Optional[str]:
    """
    Standard way to read the tenant from the request.
    - Prefer X-Tenant-ID header
    - Fallback to ?tenant= query param
    """
    tid = request.META.get("HTTP_X_TENANT_ID") or request.query_params.get("tenant")
    return str(tid) if tid else None


def has_role(user, tenant_id: Optional[str], role_names: Iterable[str]) -> bool:
    """
    True when the user holds at least one of `role_names` (case-insensitive) in the tenant.
    """
    if not user or isinstance(user, AnonymousUser) or not tenant_id:
        return False
    names = Q()
    for name in role_names:
        names |= Q(role__name__iexact=name)
    try:
        return UserRole.objects.filter(names, tenant_id=tenant_id, user_id=getattr(user, "id", None)).exists()
    except (ValidationError, ValueError):
        return False


def is_tenant_admin(user, tenant_id: Optional[str]) -> bool:
    # Treat Django staff as super admin
    if getattr(user, "is_staff", False):
        return True
    return has_role(user, tenant_id, ADMIN_ROLE_NAMES)


# --------------------------
# Permissions
# --------------------------
class IsTenantAdmin(BasePermission):
    """
    Require an OWNER/ADMIN role on the request tenant (or Django staff).
    """
    message = "Owner or admin role required for this tenant."

    def has_permission(self, request, view):
        return is_tenant_admin(request.user, get_request_tenant_id(request))
