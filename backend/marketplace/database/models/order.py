"""
Order model for order management and payment tracking.

This module defines the Order aggregate: line items with price snapshots, an
embedded payment sub-record stored as ``payment_*`` columns, and an
append-only status history. Orders are never deleted; cancellation and
rejection are terminal statuses.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Sequence,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database.base import Base, BaseModel, enum_type
from marketplace.database.models.party import PartyKind, PartyRef, UserRole, party_property

# Suffix of ORD-<epoch ms>-<seq> order numbers.
order_number_seq = Sequence("order_number_seq", metadata=Base.metadata)


class OrderStatus(str, Enum):
    """
    Order status enumeration for tracking order lifecycle.

    Attributes:
        PENDING: Order placed, awaiting supplier decision or payment
        CONFIRMED: Order accepted by the supplier or paid
        PROCESSING: Order being prepared
        SHIPPED: Order handed to delivery
        DELIVERED: Order received by the buyer
        CANCELLED: Order cancelled by either party or by a refund
        REJECTED: Order declined by the supplier
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"

    @classmethod
    def from_string(cls, value: str) -> "OrderStatus":
        """
        Create OrderStatus from string value.

        Raises:
            ValueError: If value is not a valid status
        """
        try:
            return cls(value.lower())
        except ValueError:
            valid_values = ", ".join(s.value for s in cls)
            raise ValueError(
                f"Invalid order status: {value}. Valid values are: {valid_values}"
            )

    @property
    def is_terminal(self) -> bool:
        """Check if status is terminal (no further transitions)."""
        return self in (
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
            OrderStatus.REJECTED,
        )


class PaymentStatus(str, Enum):
    """Payment sub-record status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """How the buyer intends to pay."""

    STRIPE = "stripe"
    CASH_ON_DELIVERY = "cash_on_delivery"
    BANK_TRANSFER = "bank_transfer"


class Order(BaseModel):
    """
    Order placed by a buyer with a single seller.

    Attributes:
        order_number: Human-readable unique number (ORD-<ms>-<seq>)
        buyer_kind / buyer_id: Ordering party (see ``buyer``)
        supplier_kind / supplier_id: Selling party (see ``supplier``)
        status: Current order status
        total_amount: Sum of item subtotals at creation
        shipping_address: Delivery address document
        payment_method: Intended payment method
        payment_status: Payment sub-record status
        payment_intent_id: Processor payment intent identifier
        payment_transaction_id: Processor transaction identifier
        paid_amount: Amount captured by the processor
        payment_date: When the payment completed
        tracking_number: Courier tracking number
        estimated_delivery: Estimated delivery date
        actual_delivery: Set when the order is delivered
        notes / buyer_notes / supplier_notes: Free-text notes
        items: Ordered line items
        status_history: Append-only status log, oldest first
    """

    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="Human-readable order number",
    )

    buyer_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "order_buyer_kind"),
        nullable=False,
        comment="Kind of the ordering party",
    )

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the ordering party",
    )

    supplier_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "order_supplier_kind"),
        nullable=False,
        comment="Kind of the selling party",
    )

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the selling party",
    )

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Sum of item subtotals",
    )

    shipping_address: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Delivery address",
    )

    # Embedded payment sub-record
    payment_method: Mapped[PaymentMethod] = mapped_column(
        enum_type(PaymentMethod, "order_payment_method"),
        nullable=False,
        default=PaymentMethod.STRIPE,
        comment="Intended payment method",
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_type(PaymentStatus, "order_payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
        comment="Payment status",
    )

    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
        comment="Processor payment intent identifier",
    )

    payment_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Processor transaction identifier",
    )

    paid_amount: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
        comment="Amount captured",
    )

    payment_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the payment completed",
    )

    # Fulfilment
    tracking_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Courier tracking number",
    )

    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Estimated delivery date",
    )

    actual_delivery: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Actual delivery date",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="General order notes",
    )

    buyer_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Notes written by the buyer",
    )

    supplier_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Notes written by the supplier",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    status_history: Mapped[list["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.changed_at",
        lazy="selectin",
    )

    buyer = party_property("buyer")
    supplier = party_property("supplier")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index("ix_orders_buyer", "buyer_kind", "buyer_id"),
        Index("ix_orders_supplier", "supplier_kind", "supplier_id"),
        {"comment": "Orders with embedded payment sub-record"},
    )

    @property
    def items_total(self) -> Decimal:
        """Sum of item subtotals."""
        return sum((item.subtotal for item in self.items), Decimal("0.00"))

    def counterparty_of(self, party: PartyRef) -> PartyRef:
        """Return the other side of the order for a participating party."""
        return self.supplier if party == self.buyer else self.buyer

    def record_status(
        self,
        status: OrderStatus,
        actor_id: Optional[uuid.UUID] = None,
        actor_role: Optional[UserRole] = None,
        notes: Optional[str] = None,
        changed_at: Optional[datetime] = None,
    ) -> "OrderStatusHistory":
        """
        Set the status and append the matching history entry.

        Transition rules are enforced by the order state machine, not here.
        """
        entry = OrderStatusHistory(
            status=status,
            changed_at=changed_at or datetime.now(timezone.utc),
            actor_id=actor_id,
            actor_role=actor_role,
            notes=notes,
        )
        self.status_history.append(entry)
        self.status = status
        return entry


class OrderItem(BaseModel):
    """Ordered line with a price snapshot taken at order time."""

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning order",
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="Ordered product",
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Line position within the order",
    )

    product_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Product name at order time",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Ordered quantity",
    )

    price_at_time: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Unit price snapshot",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="price_at_time * quantity",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("price_at_time >= 0", name="ck_order_items_price_non_negative"),
    )


class OrderStatusHistory(BaseModel):
    """Append-only log of order status changes."""

    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Owning order",
    )

    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus, "order_history_status"),
        nullable=False,
        comment="Status entered",
    )

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the status was entered",
    )

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Who made the change; null for system changes",
    )

    actor_role: Mapped[Optional[UserRole]] = mapped_column(
        enum_type(UserRole, "order_history_actor_role"),
        nullable=True,
        comment="Role of the actor",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Notes attached to the change",
    )

    order: Mapped["Order"] = relationship("Order", back_populates="status_history")
