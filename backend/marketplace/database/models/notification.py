"""
Notification model for in-app notifications.

Each notification is addressed to exactly one buyer or supplier, optionally
names the actor that caused it and the order, reservation or product it is
about. Push and email delivery flags are stored for the delivery hooks but
are not driven by this service.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel, enum_type
from marketplace.database.models.party import PartyKind, UserRole, party_property


class NotificationType(str, Enum):
    """Notification types emitted by the workflows."""

    ORDER_CREATED = "order_created"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_PROCESSING = "order_processing"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_REJECTED = "order_rejected"
    RESERVATION_RECEIVED = "reservation_received"
    RESERVATION_ACCEPTED = "reservation_accepted"
    RESERVATION_REJECTED = "reservation_rejected"
    RESERVATION_CANCELLED = "reservation_cancelled"
    PAYMENT_SUCCESSFUL = "payment_successful"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    RATING_RECEIVED = "rating_received"
    PRICE_UPDATED = "price_updated"
    STOCK_LOW = "stock_low"
    GENERAL = "general"


class NotificationPriority(str, Enum):
    """Display priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Notification(BaseModel):
    """
    In-app notification.

    Attributes:
        recipient_kind / recipient_id: Addressee (see ``recipient``)
        sender_role / sender_id: Actor that caused it, if any
        type: Notification type
        title: Short title
        message: Body text
        related_order_id / related_reservation_id / related_product_id:
            Entity the notification is about
        is_read / read_at: Read state
        priority: Display priority
        push_sent / email_sent: Delivery hook flags
        data: Additional structured payload
    """

    __tablename__ = "notifications"

    recipient_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "notification_recipient_kind"),
        nullable=False,
        comment="Kind of the recipient",
    )

    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the recipient",
    )

    sender_role: Mapped[Optional[UserRole]] = mapped_column(
        enum_type(UserRole, "notification_sender_role"),
        nullable=True,
        comment="Role of the actor that caused the notification",
    )

    sender_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Identifier of the actor that caused the notification",
    )

    type: Mapped[NotificationType] = mapped_column(
        enum_type(NotificationType, "notification_type"),
        nullable=False,
        index=True,
        comment="Notification type",
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Notification title",
    )

    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Notification message",
    )

    related_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Related order",
    )

    related_reservation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("reservations.id", ondelete="SET NULL"),
        nullable=True,
        comment="Related reservation",
    )

    related_product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        comment="Related product",
    )

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the recipient has read it",
    )

    read_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When it was first read",
    )

    priority: Mapped[NotificationPriority] = mapped_column(
        enum_type(NotificationPriority, "notification_priority"),
        nullable=False,
        default=NotificationPriority.MEDIUM,
        comment="Display priority",
    )

    push_sent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Push delivery hook flag",
    )

    email_sent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Email delivery hook flag",
    )

    data: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Additional payload",
    )

    recipient = party_property("recipient")

    __table_args__ = (
        Index(
            "ix_notifications_recipient_created",
            "recipient_kind",
            "recipient_id",
            "created_at",
        ),
        Index(
            "ix_notifications_recipient_unread",
            "recipient_kind",
            "recipient_id",
            "is_read",
        ),
        {"comment": "In-app notifications"},
    )
