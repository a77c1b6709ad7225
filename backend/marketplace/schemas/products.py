"""
Product catalogue schemas including price history and bulk price updates.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.database.models.party import PartyKind


class ProductCreateRequest(BaseModel):
    """New product listing."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)
    unit: str = Field(default="kg", min_length=1, max_length=20, description="Selling unit")
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    shop_name: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=500)


class ProductUpdateRequest(BaseModel):
    """Partial product update; a changed price is logged to the history."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    price_reason: Optional[str] = Field(None, max_length=500)
    stock: Optional[int] = Field(None, ge=0)
    shop_name: Optional[str] = Field(None, max_length=200)
    location: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class PriceHistoryEntryResponse(BaseModel):
    """One logged price."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    price: Decimal
    recorded_at: datetime
    editor_kind: Optional[PartyKind] = None
    editor_id: Optional[UUID] = None
    reason: str


class ProductResponse(BaseModel):
    """Product listing."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    unit: str
    price: Decimal
    stock: int
    owner_kind: PartyKind
    owner_id: UUID
    shop_name: Optional[str] = None
    location: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PricePoint(BaseModel):
    price: Decimal
    recorded_at: datetime
    reason: Optional[str] = None


class PriceTrendsResponse(BaseModel):
    """Price movement over a trailing window."""

    product_id: UUID
    product_name: str
    current_price: Decimal
    days: int
    points: list[PricePoint]
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    average_price: Optional[Decimal] = None
    first_price: Optional[Decimal] = None
    latest_price: Optional[Decimal] = None
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None


class BulkPriceUpdateItem(BaseModel):
    product_id: UUID
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    reason: Optional[str] = Field(None, max_length=500)


class BulkPriceUpdateRequest(BaseModel):
    """Several price changes applied item by item."""

    updates: list[BulkPriceUpdateItem] = Field(..., min_length=1, max_length=100)


class BulkPriceUpdateResult(BaseModel):
    product_id: UUID
    status: Literal["updated", "skipped", "failed"]
    price: Optional[Decimal] = None
    old_price: Optional[Decimal] = None
    error: Optional[str] = None


class BulkPriceUpdateResponse(BaseModel):
    updated: int
    skipped: int
    failed: int
    results: list[BulkPriceUpdateResult]


class ShopSummary(BaseModel):
    """A shop selling a matching product."""

    shop_kind: PartyKind
    shop_id: UUID
    shop_name: str
    shop_location: Optional[str] = None
    contact_number: str
    product_id: UUID
    product_name: str
    price: Decimal
    unit: str
    stock: int
    product_count: int = Field(..., ge=1, description="Matching products owned by the shop")


class ShopSearchResponse(BaseModel):
    product_name: str
    total: int
    shops: list[ShopSummary]
