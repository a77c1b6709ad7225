"""
Payment schemas for intents, confirmation, refunds, webhooks and history.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from marketplace.schemas.orders import OrderResponse, StatusTotals


class PaymentIntentRequest(BaseModel):
    """Intent creation for an order."""

    order_id: UUID
    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        max_digits=12,
        decimal_places=2,
        description="Must equal the order total when given",
    )


class PaymentIntentResponse(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: Decimal
    currency: str
    order_id: UUID
    demo_mode: bool


class PaymentConfirmRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class RefundRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class WebhookResponse(BaseModel):
    received: bool
    event_id: str
    event_type: str
    duplicate: bool
    handled: bool
    order_id: Optional[UUID] = None


class PaymentHistoryResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    page: int
    limit: int
    totals: dict[str, StatusTotals]
