import uuid
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import Field

from .common import CamelModel, ServiceSummary, UserSummary


FeedbackStatus = Literal["pending", "approved", "rejected", "hidden"]
CategoryName = Literal["quality", "punctuality", "communication", "cleanliness", "professionalism", "value_for_money"]

FEEDBACK_CATEGORIES = ["quality", "punctuality", "communication", "cleanliness", "professionalism", "value_for_money"]


class CategoryRating(CamelModel):
    category: CategoryName
    rating: int = Field(ge=1, le=5)


class FeedbackCreate(CamelModel):
    booking_id: uuid.UUID
    service_id: uuid.UUID
    technician_id: Optional[uuid.UUID] = None
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    categories: List[CategoryRating] = []
    is_anonymous: bool = False
    is_public: bool = True


class FeedbackUpdate(CamelModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)
    categories: Optional[List[CategoryRating]] = None
    is_public: Optional[bool] = None
    status: Optional[FeedbackStatus] = None


class FeedbackStatusUpdate(CamelModel):
    status: str


class ReplyRequest(CamelModel):
    content: Optional[str] = None


class AssignTechnicianRequest(CamelModel):
    technician_id: Optional[uuid.UUID] = None


class FeedbackResponse(CamelModel):
    id: uuid.UUID
    house_owner: Optional[UserSummary] = None
    technician: Optional[UserSummary] = None
    service: Optional[ServiceSummary] = None
    booking_id: uuid.UUID
    rating: int
    comment: Optional[str] = None
    categories: Optional[list] = None
    is_anonymous: bool = False
    is_verified: bool = True
    is_public: bool = True
    admin_response: Optional[dict] = None
    helpful_count: int = 0
    reported_count: int = 0
    status: str
    average_category_rating: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
