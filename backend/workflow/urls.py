from rest_framework.routers import DefaultRouter
from django.urls import path, include
from .views import EventViewSet, WebhookSubscriptionViewSet, WorkflowRunViewSet, WorkflowViewSet

router = DefaultRouter()  # default trailing slash = True
router.register(r'workflows', WorkflowViewSet, basename="workflow")
router.register(r'runs', WorkflowRunViewSet, basename="workflow-run")
router.register(r'webhooks', WebhookSubscriptionViewSet, basename="webhook")
router.register(r'events', EventViewSet, basename="event")

urlpatterns = [
    path('', include(router.urls)),
]
