import uuid
from typing import Optional

from pydantic import Field

from .common import CamelModel


class PaymentIntentRequest(CamelModel):
    booking_id: uuid.UUID
    amount: float = Field(gt=0)
    currency: Optional[str] = None


class ConfirmPaymentRequest(CamelModel):
    payment_intent_id: str = Field(min_length=1)
    booking_id: uuid.UUID


class CashPaymentRequest(CamelModel):
    booking_id: uuid.UUID
    collected_amount: float = Field(gt=0)
    notes: Optional[str] = ""
