"""
Payment API endpoints.

Buyers create and confirm payment intents for their orders; suppliers
refund completed payments. The webhook endpoint is unauthenticated and
trusts only a verified processor signature.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Header, Query, Request, status

from marketplace.api.deps import BuyerActor, PartyActor, PaymentServiceDep, SupplierActor
from marketplace.core.logging import get_logger
from marketplace.schemas.common import ApiResponse, ok
from marketplace.schemas.orders import OrderResponse
from marketplace.schemas.payments import (
    PaymentConfirmRequest,
    PaymentHistoryResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    RefundRequest,
    WebhookResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/create-intent",
    response_model=ApiResponse[PaymentIntentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create payment intent",
    description="Create a processor payment intent for the order total. "
    "Runs against a simulated processor when no processor key is configured.",
)
async def create_payment_intent(
    request: PaymentIntentRequest,
    actor: BuyerActor,
    service: PaymentServiceDep,
) -> ApiResponse[PaymentIntentResponse]:
    """
    Create a payment intent for an order.

    Raises:
        PaymentAlreadyCompletedError: 400 if the order is already paid
        PaymentValidationError: 400 if the amount differs from the total
        PaymentProcessorError: 500 if the processor fails
    """
    result = await service.create_payment_intent(
        request.order_id, actor, amount=request.amount
    )
    return ok(PaymentIntentResponse.model_validate(result), "Payment intent created")


@router.post(
    "/confirm",
    response_model=ApiResponse[OrderResponse],
    summary="Confirm payment",
    description="Reconcile an order with the processor's status of its intent.",
)
async def confirm_payment(
    request: PaymentConfirmRequest,
    actor: BuyerActor,
    service: PaymentServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await service.confirm_payment(request.payment_intent_id, actor)
    return ok(
        OrderResponse.model_validate(order),
        f"Payment status: {order.payment_status.value}",
    )


@router.post(
    "/{order_id}/refund",
    response_model=ApiResponse[OrderResponse],
    summary="Refund payment",
    description="Refund a completed payment and cancel the order. Supplier only.",
)
async def refund_payment(
    order_id: UUID,
    request: RefundRequest,
    actor: SupplierActor,
    service: PaymentServiceDep,
) -> ApiResponse[OrderResponse]:
    order = await service.refund_payment(
        order_id, actor, amount=request.amount, reason=request.reason
    )
    return ok(OrderResponse.model_validate(order), "Payment refunded")


@router.post(
    "/webhook",
    response_model=ApiResponse[WebhookResponse],
    summary="Processor webhook",
    description="Receive signed processor events. Each event id is applied at most once.",
)
async def payment_webhook(
    request: Request,
    service: PaymentServiceDep,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> ApiResponse[WebhookResponse]:
    """
    Verify and apply a webhook delivery.

    Raises:
        WebhookVerificationError: 400 if the signature does not verify
    """
    payload = await request.body()
    result = await service.handle_webhook(payload, stripe_signature)
    return ok(WebhookResponse.model_validate(result))


@router.get(
    "/history",
    response_model=ApiResponse[PaymentHistoryResponse],
    summary="Payment history",
    description="Orders with a completed, failed or refunded payment, with totals per status.",
)
async def get_payment_history(
    actor: PartyActor,
    service: PaymentServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[PaymentHistoryResponse]:
    result = await service.get_payment_history(actor, page=page, limit=limit)
    result["items"] = [OrderResponse.model_validate(o) for o in result["items"]]
    return ok(PaymentHistoryResponse.model_validate(result))
