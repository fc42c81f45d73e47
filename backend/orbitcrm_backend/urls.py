# File: backend/orbitcrm_backend/urls.py
from django.urls import path, include
from django.http import JsonResponse
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView


def root(_r):
    return JsonResponse({
        "service": "orbitcrm-backend",
        "automation": "/api/v1/automation/",
    })


urlpatterns = [
    path("api/v1/automation/", include("workflow.urls")),

    # SimpleJWT
    path("api/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),

    path("", root),
]
