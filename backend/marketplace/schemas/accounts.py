"""
Account schemas for buyer and supplier registration, login and profiles.
"""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from marketplace.database.models.party import PartyKind


def _normalize_email(v: str) -> str:
    email = v.strip().lower()
    if "@" not in email or "." not in email.split("@")[-1]:
        raise ValueError("Invalid email format")
    return email


def _normalize_contact_number(v: str) -> str:
    digits = "".join(filter(str.isdigit, v))
    if not 10 <= len(digits) <= 15:
        raise ValueError("Contact number must contain 10 to 15 digits")
    return digits


Email = Annotated[str, Field(min_length=3, max_length=255), AfterValidator(_normalize_email)]
ContactNumber = Annotated[
    str, Field(min_length=10, max_length=20), AfterValidator(_normalize_contact_number)
]


class BankDetailsRequest(BaseModel):
    """Buyer payout bank details."""

    model_config = ConfigDict(str_strip_whitespace=True)

    bank_account_number: str = Field(..., min_length=1, max_length=50)
    bank_name: str = Field(..., min_length=1, max_length=100)
    bank_branch_holder_name: str = Field(..., min_length=1, max_length=200)


class BuyerRegisterRequest(BaseModel):
    """Buyer shop registration."""

    model_config = ConfigDict(str_strip_whitespace=True)

    shop_name: str = Field(..., min_length=1, max_length=200, description="Shop name")
    shop_owner_name: str = Field(..., min_length=1, max_length=200)
    shop_location: str = Field(..., min_length=1, max_length=500)
    contact_number: ContactNumber
    email: Email
    password: str = Field(..., min_length=8, max_length=128)
    bank_account_number: Optional[str] = Field(None, max_length=50)
    bank_name: Optional[str] = Field(None, max_length=100)
    bank_branch_holder_name: Optional[str] = Field(None, max_length=200)


class SupplierRegisterRequest(BaseModel):
    """Supplier registration."""

    model_config = ConfigDict(str_strip_whitespace=True)

    full_name: str = Field(..., min_length=1, max_length=200)
    business_name: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=500)
    contact_number: ContactNumber
    email: Email
    password: str = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    """Email and password credentials."""

    email: Email
    password: str = Field(..., min_length=1, max_length=128)


class BuyerResponse(BaseModel):
    """Buyer profile."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    shop_name: str
    shop_owner_name: str
    shop_location: str
    contact_number: str
    email: str
    bank_account_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_branch_holder_name: Optional[str] = None
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class SupplierResponse(BaseModel):
    """Supplier profile."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    business_name: Optional[str] = None
    location: Optional[str] = None
    contact_number: str
    email: str
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class PublicBuyerResponse(BaseModel):
    """Buyer shop as shown to other parties; no email or bank details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    shop_name: str
    shop_owner_name: str
    shop_location: str
    contact_number: str
    is_verified: bool
    created_at: Optional[datetime] = None


class PublicSupplierResponse(BaseModel):
    """Supplier as shown to other parties."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    full_name: str
    business_name: Optional[str] = None
    location: Optional[str] = None
    contact_number: str
    is_verified: bool
    created_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    """Issued access token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
    role: PartyKind
    account_id: UUID
