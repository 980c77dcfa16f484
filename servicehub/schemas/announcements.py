import uuid
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import Field, field_validator, model_validator

from .common import CamelModel, UserSummary


AnnouncementType = Literal["general", "offer", "maintenance", "feedback", "festival", "urgent"]
Audience = Literal["all", "customers", "technicians", "admins"]
AnnouncementPriority = Literal["low", "normal", "high", "urgent"]


def _legacy_priority(v):
    # Older clients send the notification scale
    return "normal" if v == "medium" else v


class OfferDetails(CamelModel):
    discount: Optional[float] = Field(default=None, ge=0)
    discount_type: Literal["percentage", "fixed"] = "percentage"
    valid_services: List[str] = []
    min_order_value: Optional[float] = Field(default=None, ge=0)


class AnnouncementCreate(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1, max_length=2000)
    type: AnnouncementType = "general"
    target_audience: Audience = "all"
    priority: AnnouncementPriority = "normal"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    related_feedback: Optional[uuid.UUID] = None
    offer_details: Optional[OfferDetails] = None

    @field_validator("priority", mode="before")
    @classmethod
    def legacy_priority(cls, v):
        return _legacy_priority(v)

    @model_validator(mode="after")
    def end_date_for_timed_types(self):
        if self.type in ("offer", "festival") and not self.end_date:
            raise ValueError("End date is required for offers and festivals")
        return self


class AnnouncementUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    type: Optional[AnnouncementType] = None
    target_audience: Optional[Audience] = None
    priority: Optional[AnnouncementPriority] = None
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    offer_details: Optional[OfferDetails] = None

    @field_validator("priority", mode="before")
    @classmethod
    def legacy_priority(cls, v):
        return _legacy_priority(v)


class FeedbackAnnouncementRequest(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    target_audience: Audience = "technicians"


class AnnouncementResponse(CamelModel):
    id: uuid.UUID
    title: str
    content: str
    type: str
    target_audience: str
    priority: str
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: Optional[UserSummary] = None
    related_feedback_id: Optional[uuid.UUID] = None
    offer_details: Optional[dict] = None
    read_by: Optional[list] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
