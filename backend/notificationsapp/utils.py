from typing import Optional, Dict, Any
from .models import NotificationDispatch


def queue_notification(
    tenant,
    title: str,
    message: str = "",
    to_user_id: Optional[str] = None,
    to_address: Optional[str] = None,
    channel: str = "in_app",
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> NotificationDispatch:
    # In-app notifications are visible as soon as they are stored.
    status = "sent" if channel == "in_app" else "queued"
    return NotificationDispatch.objects.create(
        tenant=tenant,
        to_user_id=to_user_id,
        to_address=to_address,
        channel=channel,
        title=title,
        message=message,
        entity=entity,
        entity_id=str(entity_id) if entity_id else None,
        payload_json=payload or {},
        status=status,
    )
