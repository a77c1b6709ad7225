"""
Product catalogue models with an append-only price history.

A product is listed by exactly one party (buyer or supplier acting as a
seller). Its current price is mutable, but every change goes through
Product.add_price_history so the log always explains the current value.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.database.base import BaseModel, enum_type
from marketplace.database.models.party import PartyKind, PartyRef, party_property

DEFAULT_PRICE_REASON = "Price update"


class Product(BaseModel):
    """
    Product listed for sale.

    Attributes:
        name: Product name
        description: Optional long description
        category: Optional category label
        unit: Selling unit (kg, pack, ...)
        price: Current unit price
        stock: Units available for ordering
        owner_kind / owner_id: Listing party (see ``owner``)
        shop_name: Seller display name at listing time
        location: Where the goods are held
        is_active: Whether the product is listed
        price_history: Append-only price log, oldest first
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
        comment="Product name",
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Product description",
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Product category",
    )

    unit: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="kg",
        comment="Selling unit",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Current unit price",
    )

    stock: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Units available",
    )

    owner_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "product_owner_kind"),
        nullable=False,
        comment="Kind of the listing party",
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the listing party",
    )

    shop_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Seller display name",
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Where the goods are held",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the product is listed",
    )

    price_history: Mapped[list["PriceHistoryEntry"]] = relationship(
        "PriceHistoryEntry",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PriceHistoryEntry.recorded_at",
        lazy="selectin",
    )

    owner = party_property("owner")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        Index("ix_products_owner", "owner_kind", "owner_id"),
        {"comment": "Products listed by buyers and suppliers"},
    )

    def add_price_history(
        self,
        new_price: Decimal,
        editor: Optional[PartyRef] = None,
        reason: Optional[str] = None,
        recorded_at: Optional[datetime] = None,
    ) -> "PriceHistoryEntry":
        """
        Set a new current price and log it.

        Args:
            new_price: New unit price
            editor: Party making the change
            reason: Free-text reason, defaults to "Price update"
            recorded_at: Timestamp of the change, defaults to now

        Returns:
            The appended history entry
        """
        entry = PriceHistoryEntry(
            price=new_price,
            recorded_at=recorded_at or datetime.now(timezone.utc),
            reason=reason or DEFAULT_PRICE_REASON,
        )
        entry.editor = editor
        self.price_history.append(entry)
        self.price = new_price
        return entry

    def recent_price_history(self, limit: int = 10) -> list["PriceHistoryEntry"]:
        """Most recent history entries, newest first."""
        return sorted(
            self.price_history,
            key=lambda entry: entry.recorded_at,
            reverse=True,
        )[:limit]


class PriceHistoryEntry(BaseModel):
    """One logged price of a product."""

    __tablename__ = "product_price_history"

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Product the price belongs to",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        comment="Logged unit price",
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the price took effect",
    )

    editor_kind: Mapped[Optional[PartyKind]] = mapped_column(
        enum_type(PartyKind, "price_editor_kind"),
        nullable=True,
        comment="Kind of the party that changed the price",
    )

    editor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Identifier of the party that changed the price",
    )

    reason: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        default=DEFAULT_PRICE_REASON,
        comment="Reason for the change",
    )

    product: Mapped["Product"] = relationship(
        "Product",
        back_populates="price_history",
    )

    editor = party_property("editor")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_price_history_price_non_negative"),
        Index("ix_price_history_product_recorded", "product_id", "recorded_at"),
    )
