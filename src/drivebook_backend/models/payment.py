'''
Pydantic models for payment records and gateway intents.
'''
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..database.db_enums import PaymentMethod, PaymentStatus, PaymentType


# --- 1. API Input Models ---

class PaymentIntentCreate(BaseModel):
    """
    Opens a card payment. With lesson_ids it pays for those lessons and the
    amount is their total; without, it is a balance top-up of `amount`.
    """
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    instructor_id: Optional[UUID] = None
    lesson_ids: list[UUID] = Field(default_factory=list)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _amount_or_lessons(self) -> "PaymentIntentCreate":
        if not self.lesson_ids and self.amount is None:
            raise ValueError("A top-up needs an amount.")
        return self


# --- 2. Gateway boundary ---

class GatewayIntent(BaseModel):
    """The subset of a gateway payment intent the reconciler reads."""
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None  # minor units (pence)
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class GatewayEvent(BaseModel):
    """A verified inbound gateway event, reduced to what reconciliation needs."""
    id: str
    type: str
    intent_id: Optional[str] = None


# --- 3. API Output Models ---

class PaymentRead(BaseModel):
    id: UUID
    type: PaymentType
    method: PaymentMethod
    instructor_id: Optional[UUID] = None
    learner_id: UUID
    lesson_ids: list[UUID] = Field(default_factory=list)
    package_id: Optional[UUID] = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    stripe_payment_intent_id: Optional[str] = None
    description: Optional[str] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentIntentRead(BaseModel):
    payment_id: UUID
    intent_id: str
    client_secret: str
    amount: Decimal
    currency: str


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    payment_id: Optional[UUID] = None
    status: Optional[PaymentStatus] = None
