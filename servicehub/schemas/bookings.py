import uuid
from datetime import date, datetime
from typing import List, Optional, Literal
import enum

from pydantic import Field, field_validator

from .common import CamelModel, ServiceSummary, TechnicianSummary, UserSummary


class BookingStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


Urgency = Literal["normal", "medium", "high"]
PaymentMethod = Literal["cash", "credit_card"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


class InventoryLine(CamelModel):
    item_id: uuid.UUID
    name: str
    unit: Optional[str] = "piece"
    image: Optional[str] = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    total_price: Optional[float] = None

    @field_validator("total_price")
    @classmethod
    def non_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError("totalPrice cannot be negative")
        return v


class BookingCreate(CamelModel):
    service_id: uuid.UUID
    scheduled_date: date
    scheduled_time: str = Field(min_length=1, max_length=20)
    address: str = Field(min_length=1, max_length=500)
    description: str = ""
    urgency: Urgency = "normal"
    budget: Optional[float] = Field(default=None, ge=0)
    payment_method: PaymentMethod
    selected_payment_method: Optional[PaymentMethod] = None
    card_details: Optional[dict] = None
    selected_inventory: List[InventoryLine] = []


class BookingUpdate(CamelModel):
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    urgency: Optional[Urgency] = None


class StatusUpdate(CamelModel):
    status: BookingStatus
    technician_notes: Optional[str] = None
    completion_notes: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None


class AssignTechnicianRequest(CamelModel):
    technician_id: Optional[uuid.UUID] = None


class PaymentStatusUpdate(CamelModel):
    payment_status: str


class BookingResponse(CamelModel):
    id: uuid.UUID
    house_owner_id: uuid.UUID
    service_id: uuid.UUID
    technician_id: Optional[uuid.UUID] = None
    house_owner: Optional[UserSummary] = None
    service: Optional[ServiceSummary] = None
    technician: Optional[TechnicianSummary] = None
    scheduled_date: date
    scheduled_time: str
    status: str
    address: str
    description: Optional[str] = None
    urgency: str
    budget: Optional[float] = None
    estimated_cost: Optional[float] = None
    technician_notes: Optional[str] = None
    completion_notes: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[uuid.UUID] = None
    selected_inventory: Optional[list] = None
    payment_method: Optional[str] = None
    selected_payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    payment_completed_at: Optional[datetime] = None
    stripe_payment_intent_id: Optional[str] = None
    cash_payment_details: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
