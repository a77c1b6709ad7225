"""
Order schemas for placement, status changes and order views.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.database.models.order import OrderStatus, PaymentMethod, PaymentStatus
from marketplace.database.models.party import PartyKind, UserRole


class OrderItemRequest(BaseModel):
    """Requested product and quantity."""

    product_id: UUID
    quantity: int = Field(..., ge=1, description="Quantity to order")


class ShippingAddressRequest(BaseModel):
    """Delivery address."""

    model_config = ConfigDict(str_strip_whitespace=True)

    recipient_name: str = Field(..., min_length=1, max_length=200)
    address_line: str = Field(..., min_length=1, max_length=500)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    contact_number: str = Field(..., min_length=10, max_length=20)


class OrderCreateRequest(BaseModel):
    """Order placement."""

    items: list[OrderItemRequest] = Field(..., min_length=1, max_length=100)
    shipping_address: ShippingAddressRequest
    payment_method: PaymentMethod = PaymentMethod.STRIPE
    notes: Optional[str] = Field(None, max_length=2000)


class OrderStatusUpdateRequest(BaseModel):
    """Requested status change."""

    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=2000)
    tracking_number: Optional[str] = Field(None, max_length=100)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    product_name: str
    quantity: int
    price_at_time: Decimal
    subtotal: Decimal


class OrderStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    changed_at: datetime
    actor_id: Optional[UUID] = None
    actor_role: Optional[UserRole] = None
    notes: Optional[str] = None


class OrderResponse(BaseModel):
    """Order with items, payment sub-record and status history."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    buyer_kind: PartyKind
    buyer_id: UUID
    supplier_kind: PartyKind
    supplier_id: UUID
    status: OrderStatus
    total_amount: Decimal
    shipping_address: dict
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    paid_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    notes: Optional[str] = None
    buyer_notes: Optional[str] = None
    supplier_notes: Optional[str] = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    status_history: list[OrderStatusHistoryResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusTotals(BaseModel):
    count: int
    total_amount: Decimal


class OrderStatisticsResponse(BaseModel):
    total_orders: int
    total_amount: Decimal
    by_status: dict[str, StatusTotals]
