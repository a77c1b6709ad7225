"""
Order management API endpoints.

Buyers place orders; the buyer and supplier of an order read it and move it
through its status workflow. Listings and statistics are scoped to the
caller's side of the order.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import BuyerActor, CurrentActor, OrderServiceDep, PartyActor
from marketplace.core.logging import get_logger
from marketplace.database.models.order import OrderStatus
from marketplace.schemas.common import ApiResponse, Page, ok
from marketplace.schemas.orders import (
    OrderCreateRequest,
    OrderResponse,
    OrderStatisticsResponse,
    OrderStatusUpdateRequest,
)
from marketplace.services.orders.service import OrderLine

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post(
    "/",
    response_model=ApiResponse[OrderResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="Place an order for products of a single supplier. Stock is reserved atomically.",
)
async def create_order(
    request: OrderCreateRequest,
    actor: BuyerActor,
    service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    """
    Create an order for the authenticated buyer.

    Raises:
        InsufficientStockError: 400 if a product lacks stock
        MixedSupplierError: 400 if the items span suppliers
        OrderProductNotFoundError: 404 if a product is missing or inactive
    """
    logger.info(
        "Creating order",
        actor_id=str(actor.id),
        item_count=len(request.items),
    )
    order = await service.create_order(
        actor,
        [OrderLine(item.product_id, item.quantity) for item in request.items],
        shipping_address=request.shipping_address.model_dump(),
        payment_method=request.payment_method,
        notes=request.notes,
    )
    return ok(OrderResponse.model_validate(order), "Order created successfully")


@router.get(
    "/",
    response_model=ApiResponse[Page[OrderResponse]],
    summary="List orders",
    description="Orders placed by a buyer, or received by a supplier, newest first.",
)
async def list_orders(
    actor: PartyActor,
    service: OrderServiceDep,
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[Page[OrderResponse]]:
    result = await service.list_orders(actor, status=order_status, page=page, limit=limit)
    return ok(
        Page.build(
            [OrderResponse.model_validate(o) for o in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/stats",
    response_model=ApiResponse[OrderStatisticsResponse],
    summary="Order statistics",
    description="Count and total amount per status.",
)
async def get_order_statistics(
    actor: PartyActor,
    service: OrderServiceDep,
) -> ApiResponse[OrderStatisticsResponse]:
    stats = await service.get_statistics(actor)
    return ok(OrderStatisticsResponse.model_validate(stats))


@router.get(
    "/{order_id}",
    response_model=ApiResponse[OrderResponse],
    summary="Get order",
)
async def get_order(
    order_id: UUID,
    actor: CurrentActor,
    service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await service.get_order(order_id, actor)
    return ok(OrderResponse.model_validate(order))


@router.patch(
    "/{order_id}/status",
    response_model=ApiResponse[OrderResponse],
    summary="Update order status",
    description="Move the order to an allowed successor status and notify the counterparty.",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdateRequest,
    actor: PartyActor,
    service: OrderServiceDep,
) -> ApiResponse[OrderResponse]:
    """
    Transition an order.

    Raises:
        InvalidTransitionError: 400 if the status is not an allowed successor
        OrderAccessError: 403 if the caller is not a party to the order
    """
    order = await service.update_order_status(
        order_id,
        request.status,
        actor,
        notes=request.notes,
        tracking_number=request.tracking_number,
    )
    logger.info(
        "Order status updated via API",
        order_id=str(order_id),
        new_status=request.status.value,
    )
    return ok(OrderResponse.model_validate(order), "Order status updated successfully")
