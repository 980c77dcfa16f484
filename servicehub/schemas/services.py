import uuid
from datetime import datetime
from typing import List, Optional
import enum

from pydantic import Field

from .common import CamelModel


class ServiceCategory(str, enum.Enum):
    plumbing = "plumbing"
    electrician = "electrician"
    cleaning = "cleaning"
    carpentry = "carpentry"
    painting = "painting"
    gardening = "gardening"
    appliance_repair = "appliance_repair"
    hvac = "hvac"
    furniture_cleaning = "furniture_cleaning"
    other = "other"


class ServiceBase(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    category: ServiceCategory
    description: str = Field(min_length=1)
    base_price: float = Field(gt=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    estimated_duration: str = "2-4 hours"
    features: List[str] = []
    requirements: List[str] = []
    image_url: str = ""


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[ServiceCategory] = None
    description: Optional[str] = None
    base_price: Optional[float] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    estimated_duration: Optional[str] = None
    features: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class ServiceResponse(ServiceBase):
    id: uuid.UUID
    category: str
    is_active: bool
    features: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
