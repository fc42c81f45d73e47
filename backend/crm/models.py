from django.db import models
from common.models import BaseModel


class Customer(BaseModel):
    """Company account. Automation payloads address it as `companyId`."""
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="customers")
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True, null=True)
    status = models.CharField(max_length=24, default="active")  # active|inactive|churned
    owner_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "status"])]


class Contact(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="contacts")
    customer = models.ForeignKey("crm.Customer", on_delete=models.SET_NULL, blank=True, null=True, related_name="contacts")
    first_name = models.CharField(max_length=100, blank=True, null=True)
    last_name = models.CharField(max_length=100, blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    owner_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "customer"])]


class Opportunity(BaseModel):
    """Deal (`dealId`). Stage is free text set by users or UPDATE_DEAL_STAGE actions."""
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="opportunities")
    customer = models.ForeignKey("crm.Customer", on_delete=models.SET_NULL, null=True, blank=True, related_name="opportunities")
    contact = models.ForeignKey("crm.Contact", on_delete=models.SET_NULL, null=True, blank=True, related_name="opportunities")
    name = models.CharField(max_length=200)
    amount = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    stage = models.CharField(max_length=32, default="new")  # new|qualified|proposal|won|lost
    owner_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "stage"]),
            models.Index(fields=["tenant", "owner_user_id"]),
        ]


class Activity(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="activities")
    customer = models.ForeignKey("crm.Customer", on_delete=models.SET_NULL, null=True, blank=True, related_name="activities")
    contact = models.ForeignKey("crm.Contact", on_delete=models.SET_NULL, null=True, blank=True, related_name="activities")
    opportunity = models.ForeignKey("crm.Opportunity", on_delete=models.SET_NULL, null=True, blank=True, related_name="activities")

    kind = models.CharField(max_length=20, default="note")  # note|call|meeting|task|email
    subject = models.CharField(max_length=200)
    content = models.TextField(blank=True, null=True)
    due_at = models.DateTimeField(blank=True, null=True)
    owner_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        verbose_name_plural = "activities"
        indexes = [
            models.Index(fields=["tenant", "customer", "-created_at"]),
            models.Index(fields=["tenant", "due_at"]),
        ]
