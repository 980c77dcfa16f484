import uuid
from datetime import datetime
from typing import Optional, Literal

from pydantic import Field

from .common import CamelModel


NotificationType = Literal[
    "booking_created",
    "booking_assigned",
    "technician_assigned",
    "booking_started",
    "booking_completed",
    "booking_cancelled",
    "feedback_received",
    "feedback_assigned",
    "feedback_reply",
    "announcement",
    "inventory_alert",
    "payment_reminder",
    "payment_received",
    "payment_confirmed",
    "cash_payment",
]
Priority = Literal["low", "medium", "high", "urgent"]
RelatedEntity = Literal["booking", "feedback", "inventory", "user", "service"]


class NotificationCreate(CamelModel):
    recipient: Optional[uuid.UUID] = None
    type: NotificationType = "announcement"
    title: str = "New Notification"
    message: str = ""
    related_entity: RelatedEntity = "user"
    entity_id: Optional[uuid.UUID] = None
    priority: Priority = "medium"
    action_required: bool = False
    action_url: Optional[str] = None


class NotificationResponse(CamelModel):
    id: uuid.UUID
    recipient_id: uuid.UUID
    sender_id: Optional[uuid.UUID] = None
    type: str
    title: str
    message: str
    related_entity: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    priority: str
    action_required: bool = False
    action_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata_json: Optional[dict] = Field(default=None, serialization_alias="metadata")
    created_at: Optional[datetime] = None
