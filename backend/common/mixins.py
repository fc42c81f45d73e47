# backend/common/mixins.py
from __future__ import annotations

from typing import Dict, Any, Optional
from django.core.exceptions import FieldDoesNotExist, ValidationError
from django.db.models import Q, Model
from django.utils.functional import cached_property
from rest_framework.viewsets import ModelViewSet, ReadOnlyModelViewSet
from rest_framework.pagination import PageNumberPagination
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission, SAFE_METHODS

from platformapp.models import Tenant
from platformapp.services.audit import log_event

TENANT_HEADER = "HTTP_X_TENANT_ID"  # maps to X-Tenant-ID


# -----------------------------
# Pagination
# -----------------------------
class DefaultPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 200


class PrivateTenantOnly(BasePermission):
    """All methods require an authenticated user + X-Tenant-ID."""
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.META.get(TENANT_HEADER))


# -----------------------------
# Base tenant-scoped viewsets
# -----------------------------
class TenantScopedMixin:
    """
    Opinionated, multi-tenant base ViewSet:

    - Reads tenant from `X-Tenant-ID` header or `?tenant=` query param.
    - Filters the queryset by `<tenant_field>_id=...`; without a tenant, reads
      return an empty set and writes are forbidden.
    - Injects the tenant server-side on create; payload tenant is ignored.
    - Adds simple "q" search (icontains across `search_fields`) and "order" (comma-separated).
    - Applies simple exact filters from query params that match model fields.
    """
    pagination_class = DefaultPagination
    permission_classes = [PrivateTenantOnly]

    tenant_query_param = "tenant"
    tenant_field = "tenant"
    search_fields: tuple = ()
    ordering_fields: tuple = ()
    default_ordering: tuple = ("-created_at",)

    # ---- Tenant helpers ----
    def get_tenant_id(self) -> Optional[str]:
        req = self.request
        tid = req.META.get(TENANT_HEADER) or req.query_params.get(self.tenant_query_param)
        return str(tid) if tid else None

    @cached_property
    def current_tenant(self) -> Optional[Tenant]:
        tid = self.get_tenant_id()
        if not tid:
            return None
        try:
            return Tenant.objects.get(id=tid)
        except (Tenant.DoesNotExist, ValidationError, ValueError):
            return None

    def get_tenant(self) -> Tenant:
        tenant = self.current_tenant
        if not tenant:
            raise PermissionDenied("Tenant context required (send X-Tenant-ID or ?tenant=).")
        return tenant

    # ---- Queryset plumbing ----
    def _model_class(self) -> type[Model]:
        return self.queryset.model

    def _has_field(self, field_name: str) -> bool:
        try:
            self._model_class()._meta.get_field(field_name)
            return True
        except FieldDoesNotExist:
            return False

    def _apply_search(self, qs):
        q = self.request.query_params.get("q")
        if not q:
            return qs
        fields = tuple(self.search_fields) or tuple(
            f for f in ("name", "title", "description") if self._has_field(f)
        )
        if not fields:
            return qs
        cond = Q()
        for f in fields:
            cond |= Q(**{f"{f}__icontains": q})
        return qs.filter(cond)

    def _apply_ordering(self, qs):
        order_param = self.request.query_params.get("order")
        fields_allowed = set(self.ordering_fields or ())
        if order_param:
            items = [s.strip() for s in order_param.split(",") if s.strip()]
            cleaned = []
            for it in items:
                base = it[1:] if it.startswith("-") else it
                if not fields_allowed or base in fields_allowed:
                    cleaned.append(it)
            if cleaned:
                return qs.order_by(*cleaned)
        return qs.order_by(*self.default_ordering) if self.default_ordering else qs

    def _apply_simple_filters(self, qs):
        """
        For any query param that matches a real model field (and is not control param),
        apply an exact filter. For 'in' semantics, allow CSV via <field>__in=a,b,c
        """
        IGNORE = {self.tenant_query_param, "q", "order", "page", "page_size"}
        IGNORE |= set(getattr(self, "filterset_fields", None) or ())  # left to django-filter
        filters: Dict[str, Any] = {}

        for key, value in self.request.query_params.items():
            if key in IGNORE:
                continue
            base = key.split("__", 1)[0]
            if not self._has_field(base):
                continue
            if key.endswith("__in"):
                filters[key] = [v for v in value.split(",") if v != ""]
            else:
                filters[key] = value

        return qs.filter(**filters) if filters else qs

    def get_queryset(self):
        qs = self.queryset.all()
        tenant = self.current_tenant
        if not tenant:
            if self.request.method in SAFE_METHODS:
                return qs.none()
            raise PermissionDenied("Missing tenant context")

        qs = qs.filter(**{f"{self.tenant_field}_id": tenant.id})
        qs = self._apply_simple_filters(qs)
        qs = self._apply_search(qs)
        qs = self._apply_ordering(qs)
        return qs

    def perform_create(self, serializer):
        return serializer.save(**{self.tenant_field: self.get_tenant()})


class TenantScopedModelViewSet(TenantScopedMixin, ModelViewSet):
    pass


class TenantScopedReadOnlyViewSet(TenantScopedMixin, ReadOnlyModelViewSet):
    pass


class AuditedActionsMixin:
    """Attach to ViewSets you want to auto-audit."""
    audit_entity: Optional[str] = None

    def _audit(self, action: str, obj, meta=None):
        user_id = getattr(self.request.user, "id", None)
        entity = self.audit_entity or obj.__class__.__name__
        log_event(tenant=obj.tenant, user_id=str(user_id) if user_id else None,
                  action=action, entity=entity, entity_id=str(obj.id), meta=meta or {})

    def perform_create(self, serializer):
        obj = super().perform_create(serializer)
        self._audit("create", obj, meta={"path": self.request.path, "method": self.request.method})
        return obj

    def perform_update(self, serializer):
        obj = serializer.save()
        self._audit("update", obj, meta={"path": self.request.path, "method": self.request.method})
        return obj

    def perform_destroy(self, instance):
        self._audit("delete", instance, meta={"path": self.request.path, "method": self.request.method})
        return super().perform_destroy(instance)
