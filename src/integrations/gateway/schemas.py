from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class GatewayPaymentEvent(BaseModel):
    """
    Successful-payment event as handed over by a gateway adapter.

    `reference` is the gateway's transaction reference and doubles as the
    idempotency key: the same event delivered twice records one payment.
    """

    reference: str = Field(..., min_length=1, max_length=100)
    student_id: int
    amount: Decimal = Field(..., gt=0)
    paid_at: datetime | None = None
    gateway: str = Field(..., min_length=1, max_length=50)
    customer_email: str | None = None


class GatewayFailureEvent(BaseModel):
    reference: str = Field(..., min_length=1, max_length=100)
    gateway: str = Field(..., min_length=1, max_length=50)
    reason: str | None = None


class GatewayEventResult(BaseModel):
    status: str
    payment_id: int | None = None
    payment_reference: str | None = None
    replayed: bool = False
