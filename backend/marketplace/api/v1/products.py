"""
Product catalogue API endpoints.

Listing and reading products, including price history and trends, and
finding the shops that sell a product are public. Creating, editing and repricing requires a buyer or supplier token;
only the product's owner may change it.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import PartyActor, ProductServiceDep
from marketplace.core.exceptions import ValidationError
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyKind, PartyRef
from marketplace.schemas.common import ApiResponse, Page, ok
from marketplace.schemas.products import (
    BulkPriceUpdateRequest,
    BulkPriceUpdateResponse,
    PriceHistoryEntryResponse,
    PriceTrendsResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    ShopSearchResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


@router.post(
    "/",
    response_model=ApiResponse[ProductResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    description="List a new product owned by the caller; seeds its price history.",
)
async def create_product(
    request: ProductCreateRequest,
    actor: PartyActor,
    service: ProductServiceDep,
) -> ApiResponse[ProductResponse]:
    product = await service.create_product(actor, **request.model_dump())
    return ok(ProductResponse.model_validate(product), "Product created successfully")


@router.get(
    "/",
    response_model=ApiResponse[Page[ProductResponse]],
    summary="List products",
)
async def list_products(
    service: ProductServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    owner_kind: Optional[PartyKind] = Query(None, description="Owner kind filter"),
    owner_id: Optional[UUID] = Query(None, description="Owner identifier filter"),
    search: Optional[str] = Query(None, max_length=200),
    category: Optional[str] = Query(None, max_length=100),
) -> ApiResponse[Page[ProductResponse]]:
    if (owner_kind is None) != (owner_id is None):
        raise ValidationError("owner_kind and owner_id must be given together")
    owner = PartyRef(owner_kind, owner_id) if owner_kind is not None else None

    result = await service.list_products(
        page=page,
        limit=limit,
        owner=owner,
        search=search,
        category=category,
    )
    return ok(
        Page.build(
            [ProductResponse.model_validate(p) for p in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.post(
    "/bulk-prices",
    response_model=ApiResponse[BulkPriceUpdateResponse],
    summary="Bulk price update",
    description="Apply several price changes; each item reports its own outcome.",
)
async def bulk_update_prices(
    request: BulkPriceUpdateRequest,
    actor: PartyActor,
    service: ProductServiceDep,
) -> ApiResponse[BulkPriceUpdateResponse]:
    result = await service.bulk_update_prices(
        actor,
        [item.model_dump() for item in request.updates],
    )
    return ok(
        BulkPriceUpdateResponse.model_validate(result),
        f"{result['updated']} prices updated",
    )


@router.get(
    "/shops",
    response_model=ApiResponse[ShopSearchResponse],
    summary="Find shops by product",
    description="Buyers and suppliers selling an active product whose name matches.",
)
async def find_shops(
    service: ProductServiceDep,
    product_name: str = Query(..., min_length=1, max_length=200),
    limit: int = Query(50, ge=1, le=200),
) -> ApiResponse[ShopSearchResponse]:
    result = await service.find_shops(product_name, limit=limit)
    return ok(ShopSearchResponse.model_validate(result))


@router.get(
    "/{product_id}",
    response_model=ApiResponse[ProductResponse],
    summary="Get product",
)
async def get_product(
    product_id: UUID,
    service: ProductServiceDep,
) -> ApiResponse[ProductResponse]:
    product = await service.get_product(product_id)
    return ok(ProductResponse.model_validate(product))


@router.patch(
    "/{product_id}",
    response_model=ApiResponse[ProductResponse],
    summary="Update product",
    description="Partially update a product. A changed price is appended to its history.",
)
async def update_product(
    product_id: UUID,
    request: ProductUpdateRequest,
    actor: PartyActor,
    service: ProductServiceDep,
) -> ApiResponse[ProductResponse]:
    product = await service.update_product(
        product_id,
        actor,
        request.model_dump(exclude_unset=True),
    )
    return ok(ProductResponse.model_validate(product), "Product updated successfully")


@router.delete(
    "/{product_id}",
    response_model=ApiResponse[None],
    summary="Delete product",
)
async def delete_product(
    product_id: UUID,
    actor: PartyActor,
    service: ProductServiceDep,
) -> ApiResponse[None]:
    await service.delete_product(product_id, actor)
    logger.info("Product deleted via API", product_id=str(product_id))
    return ok(message="Product deleted successfully")


@router.get(
    "/{product_id}/price-history",
    response_model=ApiResponse[list[PriceHistoryEntryResponse]],
    summary="Price history",
    description="Most recent logged prices, newest first.",
)
async def get_price_history(
    product_id: UUID,
    service: ProductServiceDep,
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[list[PriceHistoryEntryResponse]]:
    entries = await service.get_price_history(product_id, limit=limit)
    return ok([PriceHistoryEntryResponse.model_validate(e) for e in entries])


@router.get(
    "/{product_id}/price-trends",
    response_model=ApiResponse[PriceTrendsResponse],
    summary="Price trends",
)
async def get_price_trends(
    product_id: UUID,
    service: ProductServiceDep,
    days: int = Query(30, ge=1, le=365),
) -> ApiResponse[PriceTrendsResponse]:
    trends = await service.get_price_trends(product_id, days=days)
    return ok(PriceTrendsResponse.model_validate(trends))
