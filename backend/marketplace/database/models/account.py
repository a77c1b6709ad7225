"""
Buyer and supplier account models.

Buyers are shops that purchase (and may also list) goods; suppliers are
producers that list goods and fulfil orders. Both authenticate with email and
password and are referenced from other aggregates through PartyRef.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel
from marketplace.database.models.party import PartyKind, PartyRef


class Buyer(BaseModel):
    """
    Buyer shop account.

    Attributes:
        shop_name: Trading name of the shop
        shop_owner_name: Owner's full name
        shop_location: Free-text shop location
        contact_number: Phone number, 10-15 digits
        email: Unique login email
        password_hash: bcrypt hash of the password
        bank_account_number: Optional payout account number
        bank_name: Optional bank name
        bank_branch_holder_name: Optional branch / account holder name
        is_active: Whether the account may log in
        is_verified: Whether the shop has been verified
        last_login: Timestamp of the last successful login
    """

    __tablename__ = "buyers"

    shop_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Trading name of the shop",
    )

    shop_owner_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Shop owner's full name",
    )

    shop_location: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Shop location",
    )

    contact_number: Mapped[str] = mapped_column(
        String(15),
        nullable=False,
        comment="Contact phone number",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login email address",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt password hash",
    )

    bank_account_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Bank account number",
    )

    bank_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Bank name",
    )

    bank_branch_holder_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Bank branch or account holder name",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the account may log in",
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the shop has been verified",
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last successful login",
    )

    __table_args__ = (
        CheckConstraint(
            "char_length(contact_number) BETWEEN 10 AND 15",
            name="ck_buyers_contact_number_length",
        ),
        {"comment": "Buyer shop accounts"},
    )

    @property
    def party(self) -> PartyRef:
        return PartyRef(PartyKind.BUYER, self.id)

    @property
    def display_name(self) -> str:
        return self.shop_name

    @property
    def has_bank_details(self) -> bool:
        return bool(self.bank_account_number and self.bank_name)


class Supplier(BaseModel):
    """
    Supplier account.

    Attributes:
        full_name: Supplier's full name
        business_name: Optional trading name
        location: Free-text location
        contact_number: Phone number, 10-15 digits
        email: Unique login email
        password_hash: bcrypt hash of the password
        is_active: Whether the account may log in
        is_verified: Whether the supplier has been verified
        last_login: Timestamp of the last successful login
    """

    __tablename__ = "suppliers"

    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Supplier full name",
    )

    business_name: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True,
        comment="Trading name",
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Supplier location",
    )

    contact_number: Mapped[str] = mapped_column(
        String(15),
        nullable=False,
        comment="Contact phone number",
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login email address",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt password hash",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="Whether the account may log in",
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether the supplier has been verified",
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Last successful login",
    )

    __table_args__ = (
        CheckConstraint(
            "char_length(contact_number) BETWEEN 10 AND 15",
            name="ck_suppliers_contact_number_length",
        ),
        {"comment": "Supplier accounts"},
    )

    @property
    def party(self) -> PartyRef:
        return PartyRef(PartyKind.SUPPLIER, self.id)

    @property
    def display_name(self) -> str:
        return self.business_name or self.full_name
