from django.db import models
from common.models import BaseModel


class Ticket(BaseModel):
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="tickets")
    customer = models.ForeignKey("crm.Customer", on_delete=models.SET_NULL, null=True, blank=True, related_name="tickets")
    contact = models.ForeignKey("crm.Contact", on_delete=models.SET_NULL, null=True, blank=True, related_name="tickets")
    subject = models.CharField(max_length=200)
    description = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=16, default="open")  # open|pending|in_progress|resolved|closed
    priority = models.CharField(max_length=16, default="medium")  # low|medium|high|urgent
    assigned_to_user_id = models.UUIDField(blank=True, null=True)

    class Meta:
        indexes = [models.Index(fields=["tenant", "status"])]
