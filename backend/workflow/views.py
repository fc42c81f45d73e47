import copy

from django.core.exceptions import ValidationError as DjangoValidationError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.fields import BooleanField
from rest_framework.response import Response

from common.mixins import (
    AuditedActionsMixin, PrivateTenantOnly, TenantScopedModelViewSet, TenantScopedReadOnlyViewSet,
)
from platformapp.models import UserRole
from platformapp.permissions import IsTenantAdmin
from platformapp.services.audit import log_event

from .events import requeue as requeue_event
from .exceptions import AutomationError, InvalidEventState
from .models import Event, WebhookSubscription, Workflow, WorkflowRun
from .serializers import (
    EventSerializer, ManualRunSerializer, WebhookSubscriptionCreateSerializer,
    WebhookSubscriptionSerializer, WorkflowRunSerializer, WorkflowSerializer,
)
from .services import run_workflow_once
from .templates import WORKFLOW_TEMPLATES, get_template

RUN_HISTORY_LIMIT = 200


class WorkflowViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    audit_entity = "workflow"
    queryset = Workflow.objects.all()
    serializer_class = WorkflowSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {"enabled": ["exact"], "trigger_type": ["exact"]}
    search_fields = ("name", "description")
    ordering_fields = ("created_at", "updated_at", "name")

    @action(detail=True, methods=["post"])
    def toggle(self, request, pk=None):
        wf = self.get_object()
        if "enabled" in request.data:
            wf.enabled = BooleanField().to_internal_value(request.data["enabled"])
        else:
            wf.enabled = not wf.enabled
        wf.save(update_fields=["enabled", "updated_at"])
        self._audit("update", wf, meta={"path": request.path, "enabled": wf.enabled})
        return Response(self.get_serializer(wf).data)

    @action(detail=False, methods=["get"])
    def library(self, request):
        return Response({"items": WORKFLOW_TEMPLATES})

    @action(detail=False, methods=["post"], url_path=r"library/(?P<template_id>[^/.]+)/install")
    def install(self, request, template_id=None):
        template = get_template(template_id)
        if template is None:
            raise NotFound("Template not found")
        wf = Workflow.objects.create(
            tenant=self.get_tenant(),
            name=template["name"],
            description=template.get("description"),
            enabled=True,
            trigger_type=template["trigger"]["type"],
            trigger_params=copy.deepcopy(template["trigger"].get("params") or {}),
            conditions=copy.deepcopy(template["conditions"]),
            actions=copy.deepcopy(template["actions"]),
            created_by=getattr(request.user, "id", None),
        )
        self._audit("create", wf, meta={"path": request.path, "template": template_id})
        return Response(self.get_serializer(wf).data, status=status.HTTP_201_CREATED)


class WorkflowRunViewSet(TenantScopedReadOnlyViewSet):
    queryset = WorkflowRun.objects.select_related("workflow")
    serializer_class = WorkflowRunSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {"workflow": ["exact"], "status": ["exact"]}
    ordering_fields = ("executed_at",)
    default_ordering = ("-executed_at",)

    def list(self, request, *args, **kwargs):
        runs = self.filter_queryset(self.get_queryset())[:RUN_HISTORY_LIMIT]
        return Response({"items": self.get_serializer(runs, many=True).data})

    @action(detail=False, methods=["post"], url_path=r"test-run/(?P<workflow_id>[^/.]+)",
            permission_classes=[PrivateTenantOnly, IsTenantAdmin])
    def test_run(self, request, workflow_id=None):
        body = ManualRunSerializer(data=request.data)
        body.is_valid(raise_exception=True)
        tenant = self.get_tenant()

        try:
            workflow = Workflow.objects.filter(tenant=tenant, pk=workflow_id).first()
        except DjangoValidationError:
            workflow = None
        if workflow is None:
            raise NotFound("Workflow not found")

        role = (
            UserRole.objects.filter(tenant=tenant, user_id=request.user.id)
            .order_by("created_at").values_list("role__name", flat=True).first()
        )
        try:
            run = run_workflow_once(
                tenant=tenant,
                workflow_id=workflow.id,
                trigger_type=body.validated_data.get("trigger_type") or workflow.trigger_type,
                payload=body.validated_data.get("payload") or {},
                initiated_by={"userId": str(request.user.id), "role": role},
            )
        except (AutomationError, DjangoValidationError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(WorkflowRunSerializer(run).data, status=status.HTTP_201_CREATED)


class WebhookSubscriptionViewSet(AuditedActionsMixin, TenantScopedModelViewSet):
    audit_entity = "webhook"
    queryset = WebhookSubscription.objects.all()
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {"event_type": ["exact"], "enabled": ["exact"]}
    search_fields = ("url",)

    def get_serializer_class(self):
        return WebhookSubscriptionCreateSerializer if self.action == "create" else WebhookSubscriptionSerializer


class EventViewSet(TenantScopedReadOnlyViewSet):
    queryset = Event.objects.all()
    serializer_class = EventSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {"status": ["exact"], "type": ["exact"]}
    search_fields = ("type",)
    ordering_fields = ("created_at", "next_run_at", "attempts")

    @action(detail=True, methods=["post"], permission_classes=[PrivateTenantOnly, IsTenantAdmin])
    def requeue(self, request, pk=None):
        event = self.get_object()
        try:
            requeue_event(event)
        except InvalidEventState as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        log_event(tenant=event.tenant, user_id=str(request.user.id), action="update", entity="event",
                  entity_id=str(event.id), meta={"path": request.path, "requeued": True})
        return Response(self.get_serializer(event).data)
