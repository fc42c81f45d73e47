from django.db import models
from common.models import BaseModel


class Tenant(BaseModel):
    slug = models.SlugField(max_length=100, unique=True)
    name = models.CharField(max_length=200)
    status = models.CharField(max_length=20, default="active")
    plan = models.CharField(max_length=20, default="free")


class Role(BaseModel):
    # Role names used by automations: OWNER, ADMIN, MANAGER, USER
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="roles")
    name = models.CharField(max_length=100)

    class Meta:
        unique_together = (("tenant", "name"),)


class UserRole(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="user_roles")
    user_id = models.UUIDField()
    role = models.ForeignKey("platformapp.Role", on_delete=models.CASCADE, related_name="assignments")

    class Meta:
        indexes = [models.Index(fields=["tenant", "role", "created_at"])]


class AuditLog(models.Model):
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="audit_logs")
    user_id = models.UUIDField(blank=True, null=True)  # null = system
    action = models.CharField(max_length=80)          # e.g. "workflow.run.success"
    entity = models.CharField(max_length=120)         # e.g. "workflow-run"
    entity_id = models.CharField(max_length=120)
    meta_json = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "-created_at"])]
