import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from platformapp.models import Role, Tenant, UserRole


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(slug="acme", name="Acme Inc.")


@pytest.fixture
def other_tenant(db):
    return Tenant.objects.create(slug="globex", name="Globex")


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(email="owner@example.com", password="pass-1234", full_name="Olivia Owner")


@pytest.fixture
def assign_role():
    """assign_role(tenant, user_id, "MANAGER") -> UserRole"""
    def _assign(tenant, user_id, role_name):
        role, _ = Role.objects.get_or_create(tenant=tenant, name=role_name)
        return UserRole.objects.create(tenant=tenant, user_id=user_id, role=role)
    return _assign


@pytest.fixture
def api_client(tenant, user):
    client = APIClient()
    client.force_authenticate(user=user)
    client.credentials(HTTP_X_TENANT_ID=str(tenant.id))
    return client
