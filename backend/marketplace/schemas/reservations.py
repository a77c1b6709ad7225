"""
Reservation schemas for requests, shop responses and reservation views.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from marketplace.database.models.party import PartyKind
from marketplace.database.models.reservation import (
    ReservationPaymentMethod,
    ReservationStatus,
)


class ReservationCreateRequest(BaseModel):
    """Reservation request addressed to a shop."""

    model_config = ConfigDict(str_strip_whitespace=True)

    shop_id: UUID = Field(..., description="Supplier or buyer shop identifier")
    product_id: Optional[UUID] = None
    product_name: Optional[str] = Field(None, max_length=200)
    requester_name: str = Field(..., min_length=1, max_length=200)
    requester_contact: str = Field(..., min_length=10, max_length=20)
    requester_location: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., ge=1)
    requested_delivery_date: Optional[datetime] = None
    payment_method: ReservationPaymentMethod
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_name: Optional[str] = Field(None, max_length=100)
    bank_branch_holder_name: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_bank_details(self) -> "ReservationCreateRequest":
        """Advance payment needs all bank details."""
        if self.payment_method == ReservationPaymentMethod.ADVANCE and not (
            self.bank_account_number and self.bank_name and self.bank_branch_holder_name
        ):
            raise ValueError("Bank details are required for advance payment")
        return self


class ReservationAcceptRequest(BaseModel):
    """Acceptance, optionally with a counter-offer."""

    response_message: Optional[str] = Field(None, max_length=1000)
    proposed_price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    proposed_quantity: Optional[int] = Field(None, ge=1)
    proposed_delivery_date: Optional[datetime] = None


class ReservationRejectRequest(BaseModel):
    response_message: Optional[str] = Field(None, max_length=1000)


class ReservationResponse(BaseModel):
    """Reservation view."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reservation_number: str
    requester_kind: Optional[PartyKind] = None
    requester_id: Optional[UUID] = None
    requester_name: str
    requester_contact: str
    requester_location: str
    shop_kind: PartyKind
    shop_id: UUID
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity: int
    requested_delivery_date: Optional[datetime] = None
    payment_method: ReservationPaymentMethod
    bank_account_number: str
    bank_name: str
    bank_branch_holder_name: str
    notes: Optional[str] = None
    status: ReservationStatus
    expires_at: datetime
    response_message: Optional[str] = None
    responded_at: Optional[datetime] = None
    proposed_price: Optional[Decimal] = None
    proposed_quantity: Optional[int] = None
    proposed_delivery_date: Optional[datetime] = None
    converted_order_id: Optional[UUID] = None
    converted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ReservationTrackingResponse(BaseModel):
    """Reservation as shown on the public tracking lookup; no bank details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reservation_number: str
    requester_name: str
    shop_kind: PartyKind
    shop_id: UUID
    product_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity: int
    payment_method: ReservationPaymentMethod
    status: ReservationStatus
    expires_at: datetime
    response_message: Optional[str] = None
    responded_at: Optional[datetime] = None
    proposed_price: Optional[Decimal] = None
    proposed_quantity: Optional[int] = None
    proposed_delivery_date: Optional[datetime] = None
    converted_order_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


class ReservationStatisticsResponse(BaseModel):
    total: int
    by_status: dict[str, int]


class ExpirySweepResponse(BaseModel):
    expired: int


RoleView = Literal["shop", "requester"]
