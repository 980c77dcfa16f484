import uuid
from datetime import datetime
from typing import Optional, Literal
import enum

from pydantic import Field, field_validator

from .common import CamelModel


class InventoryCategory(str, enum.Enum):
    plumbing = "plumbing"
    electrical = "electrical"
    cleaning = "cleaning"
    carpentry = "carpentry"
    painting = "painting"
    garden = "garden"
    hvac = "hvac"
    appliance = "appliance"
    general = "general"


Unit = Literal["piece", "meter", "liter", "kg", "box", "set", "roll", "pack"]


class Supplier(CamelModel):
    name: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "contact", "email", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class InventoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    category: InventoryCategory
    quantity: int = Field(gt=0)
    unit: Unit
    price: float = Field(gt=0)
    cost: float = Field(gt=0)
    supplier: Optional[Supplier] = None
    location: Optional[str] = None
    reorder_level: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = None
    expiry_date: datetime
    notes: Optional[str] = None


class InventoryUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[InventoryCategory] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    unit: Optional[Unit] = None
    price: Optional[float] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[Supplier] = None
    location: Optional[str] = None
    reorder_level: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = None
    expiry_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class RestockRequest(CamelModel):
    quantity: int = Field(gt=0)
    cost: Optional[float] = Field(default=None, ge=0)


class InventoryResponse(CamelModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    category: str
    price: float
    cost: float
    quantity: int
    unit: str
    supplier: Optional[dict] = None
    reorder_level: int
    location: Optional[str] = None
    image: Optional[str] = None
    expiry_date: Optional[datetime] = None
    is_active: bool = True
    last_restocked: Optional[datetime] = None
    notes: Optional[str] = None
    stock_status: str
    profit_margin: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
