import math
import uuid
from typing import Optional, List

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire (both accepted on input)."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class UserSummary(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    mobile: Optional[str] = None


class TechnicianSummary(UserSummary):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    specialties: Optional[List[str]] = None
    rating: Optional[float] = None


class ServiceSummary(CamelModel):
    id: uuid.UUID
    name: str
    category: str
    base_price: float


def pagination(page: int, limit: int, total: int, total_key: str) -> dict:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        total_key: total,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }
