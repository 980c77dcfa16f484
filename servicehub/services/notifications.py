"""
Notification service.
Writes Notification rows and pushes them to connected clients.
"""
from typing import Optional, Dict, List
from sqlalchemy.orm import Session

from ..models.models import Notification, User
from ..schemas.notifications import NotificationResponse
from ..config import settings
from .realtime import emit


def priority_for_urgency(urgency: Optional[str]) -> str:
    if urgency == "high":
        return "high"
    if urgency == "medium":
        return "medium"
    return "low"


def priority_for_rating(rating: int) -> str:
    if rating <= 2:
        return "high"
    if rating <= 3:
        return "medium"
    return "low"


def serialize(notification: Notification) -> dict:
    return NotificationResponse.model_validate(notification).model_dump(mode="json", by_alias=True)


def push_notification(notification: Notification, event: str = "newNotification") -> None:
    if not settings.enable_push:
        return
    emit([notification.recipient_id], event, {"notification": serialize(notification)})


def create_notification(
    db: Session,
    recipient_id,
    type: str,
    title: str,
    message: str,
    related_entity: Optional[str] = None,
    entity_id=None,
    priority: str = "medium",
    action_required: bool = False,
    action_url: Optional[str] = None,
    sender_id=None,
    metadata: Optional[Dict] = None,
    push: bool = True,
) -> Notification:
    """
    Create a notification record and push it to the recipient.

    Args:
        db: Database session
        recipient_id: User receiving the notification
        type: Notification type (booking_created, inventory_alert, ...)
        push: Emit a ``newNotification`` event when the recipient is connected

    Returns:
        The persisted Notification
    """
    notification = Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        type=type,
        title=title,
        message=message,
        related_entity=related_entity,
        entity_id=entity_id,
        priority=priority,
        action_required=action_required,
        action_url=action_url,
        metadata_json=metadata,
        is_read=False,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    if push:
        push_notification(notification)
    return notification


def admin_users(db: Session) -> List[User]:
    return db.query(User).filter(User.role == "admin").all()


def notify_admins(db: Session, **kwargs) -> List[Notification]:
    """Fan out the same notification to every admin."""
    return [create_notification(db, admin.id, **kwargs) for admin in admin_users(db)]
