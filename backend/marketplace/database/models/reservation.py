"""
Reservation model: a pre-order request addressed to a shop.

A reservation names the requester (contact details and, when authenticated,
their party), the shop it is addressed to (a buyer or supplier acting as a
seller), the product line and quantity, and how the requester intends to pay.
Bank details only exist for advance payment and are stored as empty strings
otherwise.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

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
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import Base, BaseModel, enum_type
from marketplace.database.models.party import PartyKind, party_property

# Suffix of RES-<epoch ms>-<seq> reservation numbers.
reservation_number_seq = Sequence("reservation_number_seq", metadata=Base.metadata)


class ReservationStatus(str, Enum):
    """
    Reservation lifecycle status.

    PENDING may move to ACCEPTED, REJECTED, CANCELLED or EXPIRED; ACCEPTED may
    only move to CONVERTED_TO_ORDER. Every other status is terminal.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    CONVERTED_TO_ORDER = "converted_to_order"

    @property
    def is_terminal(self) -> bool:
        return self not in (ReservationStatus.PENDING, ReservationStatus.ACCEPTED)


class ReservationPaymentMethod(str, Enum):
    """Advance payment by bank transfer, or cash on delivery."""

    ADVANCE = "advance"
    COD = "cod"


class Reservation(BaseModel):
    """
    Reservation request for a future quantity of a product line.

    Attributes:
        reservation_number: Human-readable unique number (RES-<ms>-<seq>)
        requester_kind / requester_id: Authenticated requester, if any
        requester_name / requester_contact / requester_location: Contact details
        shop_kind / shop_id: Shop the request is addressed to
        product_id / product_name: Requested product line
        quantity: Requested quantity
        requested_delivery_date: When the requester wants the goods
        payment_method: advance or cod
        bank_*: Bank details, empty strings unless payment is advance
        status: Current status
        expires_at: Pending reservations expire after this instant
        response_message / responded_at: Shop's answer
        proposed_*: Counter-offer recorded on acceptance
        converted_order_id / converted_at: Order materialized from it
    """

    __tablename__ = "reservations"

    reservation_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="Human-readable reservation number",
    )

    requester_kind: Mapped[Optional[PartyKind]] = mapped_column(
        enum_type(PartyKind, "reservation_requester_kind"),
        nullable=True,
        comment="Kind of the authenticated requester",
    )

    requester_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Identifier of the authenticated requester",
    )

    requester_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Requester name",
    )

    requester_contact: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Requester mobile number",
    )

    requester_location: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Requester location",
    )

    shop_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "reservation_shop_kind"),
        nullable=False,
        comment="Kind of the shop addressed",
    )

    shop_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the shop addressed",
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="Requested product",
    )

    product_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Requested product name",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Requested quantity",
    )

    requested_delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Requested delivery date",
    )

    payment_method: Mapped[ReservationPaymentMethod] = mapped_column(
        enum_type(ReservationPaymentMethod, "reservation_payment_method"),
        nullable=False,
        comment="advance or cod",
    )

    bank_account_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="",
        comment="Account number for advance payment",
    )

    bank_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        comment="Bank name for advance payment",
    )

    bank_branch_holder_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        comment="Branch or holder name for advance payment",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Requester notes",
    )

    status: Mapped[ReservationStatus] = mapped_column(
        enum_type(ReservationStatus, "reservation_status"),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True,
        comment="Current status",
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Expiry instant for pending reservations",
    )

    response_message: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Shop's response message",
    )

    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the shop responded",
    )

    proposed_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=True,
        comment="Counter-offered unit price",
    )

    proposed_quantity: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Counter-offered quantity",
    )

    proposed_delivery_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Counter-offered delivery date",
    )

    converted_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Order created from this reservation",
    )

    converted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the reservation was converted",
    )

    requester = party_property("requester")
    shop = party_property("shop")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_reservations_quantity_positive"),
        CheckConstraint(
            "proposed_quantity IS NULL OR proposed_quantity >= 1",
            name="ck_reservations_proposed_quantity_positive",
        ),
        Index("ix_reservations_shop", "shop_kind", "shop_id"),
        Index("ix_reservations_requester", "requester_kind", "requester_id"),
        Index("ix_reservations_requester_contact", "requester_contact"),
        Index("ix_reservations_status_expires", "status", "expires_at"),
        {"comment": "Reservation requests addressed to shops"},
    )

    def clear_bank_details(self) -> None:
        self.bank_account_number = ""
        self.bank_name = ""
        self.bank_branch_holder_name = ""

    @property
    def agreed_quantity(self) -> int:
        """Quantity to order: the counter-offer if one was made."""
        return self.proposed_quantity or self.quantity
