from django.db import models


CHANNEL_CHOICES = (
    ("in_app", "In-app"),
    ("email", "Email"),
    ("sms", "SMS"),
    ("push", "Push"),
)

DISPATCH_STATUS = (
    ("queued", "Queued"),
    ("sent", "Sent"),
    ("read", "Read"),
    ("failed", "Failed"),
)


class NotificationDispatch(models.Model):
    id = models.BigAutoField(primary_key=True)
    tenant = models.ForeignKey("platformapp.Tenant", on_delete=models.CASCADE, related_name="notif_dispatches")

    to_user_id = models.UUIDField(blank=True, null=True)
    to_address = models.CharField(max_length=255, blank=True, null=True)
    channel = models.CharField(max_length=16, choices=CHANNEL_CHOICES, default="in_app")

    title = models.CharField(max_length=255)
    message = models.TextField(blank=True, default="")
    entity = models.CharField(max_length=120, blank=True, null=True)
    entity_id = models.CharField(max_length=120, blank=True, null=True)
    payload_json = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=16, choices=DISPATCH_STATUS, default="queued")
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        indexes = [
            models.Index(fields=["tenant", "to_user_id", "status"]),
            models.Index(fields=["tenant", "created_at"]),
        ]
