from django.db import models
from common.models import BaseModel


class Contract(BaseModel):
    """
    Customer contract. The renewal job scans `end_at` against the notice window.
    """
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="contracts")
    customer = models.ForeignKey("crm.Customer", on_delete=models.CASCADE, related_name="contracts")

    start_at = models.DateTimeField()
    end_at = models.DateTimeField()
    value = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    status = models.CharField(max_length=24, default="active")
    renewal_status = models.CharField(max_length=24, default="pending")
    owner_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [models.Index(fields=["end_at"])]


class CustomerSuccessProfile(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="cs_profiles")
    customer = models.ForeignKey("crm.Customer", on_delete=models.CASCADE, related_name="cs_profiles")

    lifecycle_stage = models.CharField(max_length=32, default="onboarding")
    health_score = models.IntegerField(default=60)
    health_breakdown = models.JSONField(default=list, blank=True)  # [{"label": "...", "score": 10, "notes": "..."}]
    owner_user_id = models.UUIDField(blank=True, null=True)
