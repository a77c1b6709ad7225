"""
Payment service reconciling processor state with orders.

This module implements the PaymentService class for creating payment intents,
confirming and refunding payments, and applying processor webhooks. Payment
state is the ``payment_*`` sub-record of the order. Successful payment
confirms a pending order; a refund cancels it. Every handler re-reads the
current payment status before mutating, so replays and out-of-order events
do not regress state.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from marketplace.core.config import get_settings
from marketplace.core.exceptions import ConflictError, ValidationError
from marketplace.core.logging import get_logger
from marketplace.core.security import Actor
from marketplace.database.models.notification import NotificationPriority, NotificationType
from marketplace.database.models.order import Order, OrderStatus, PaymentStatus
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.service import OrderAccessError, OrderNotFoundError
from marketplace.services.orders.state_machine import OrderStateMachine, can_transition
from marketplace.services.payments.processors import (
    INTENT_FAILED_STATUSES,
    INTENT_SUCCEEDED,
    PaymentIntent,
    PaymentProcessor,
    from_minor_units,
)
from marketplace.services.payments.repository import PaymentRepository

logger = get_logger(__name__)

HISTORY_STATUSES = (
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.REFUNDED,
)

SETTLED_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)

CLOSED_ORDER_STATUSES = (OrderStatus.CANCELLED, OrderStatus.REJECTED)


class PaymentValidationError(ValidationError):
    """Raised when a payment request does not fit the order."""

    error_code = "PAYMENT_VALIDATION_ERROR"


class PaymentAlreadyCompletedError(ConflictError):
    """Raised when paying an order whose payment already completed."""

    error_code = "PAYMENT_ALREADY_COMPLETED"


class PaymentService:
    """
    Payment workflow service.

    Attributes:
        order_repository: Order repository holding the payment sub-record
        payment_repository: Webhook event ledger
        processor: Payment processor (Stripe or demo)
        notification_service: Notification dispatcher
        state_machine: Order transition table enforcement
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        payment_repository: PaymentRepository,
        processor: PaymentProcessor,
        notification_service: NotificationService,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.order_repository = order_repository
        self.payment_repository = payment_repository
        self.processor = processor
        self.notification_service = notification_service
        self.state_machine = state_machine or OrderStateMachine()

    async def create_payment_intent(
        self,
        order_id: uuid.UUID,
        actor: Actor,
        amount: Optional[Decimal] = None,
    ) -> dict[str, Any]:
        """
        Create a processor intent for the order total.

        Args:
            order_id: Order to pay
            actor: Buyer of the order
            amount: Optional amount; must equal the order total when given

        Returns:
            Dictionary with payment_intent_id, client_secret, amount,
            currency, order_id and demo_mode

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessError: If the actor is not the order's buyer
            PaymentAlreadyCompletedError: If payment already completed
            PaymentValidationError: If the amount differs from the total or
                the order is closed
            PaymentProcessorError: If the processor fails
        """
        order = await self._get_order(order_id)
        if not actor.is_party(order.buyer):
            raise OrderAccessError(
                "Only the buyer can pay for this order",
                order_id=str(order_id),
            )
        if order.payment_status == PaymentStatus.COMPLETED:
            raise PaymentAlreadyCompletedError(
                "Payment already completed for this order",
                order_id=str(order_id),
            )
        if order.status in CLOSED_ORDER_STATUSES:
            raise PaymentValidationError(
                f"Cannot pay for a {order.status.value} order",
                order_id=str(order_id),
            )
        if amount is not None and Decimal(amount) != order.total_amount:
            raise PaymentValidationError(
                "Payment amount must equal the order total",
                order_id=str(order_id),
                amount=str(amount),
                total_amount=str(order.total_amount),
            )

        currency = get_settings().payment_currency
        intent = await self.processor.create_intent(
            amount=order.total_amount,
            currency=currency,
            order_id=order.id,
            metadata={"order_number": order.order_number},
        )

        order.payment_intent_id = intent.id
        order.payment_status = PaymentStatus.PROCESSING
        await self.order_repository.save(order)

        logger.info(
            "Payment intent created for order",
            order_id=str(order.id),
            payment_intent_id=intent.id,
            demo_mode=self.processor.demo_mode,
        )
        return {
            "payment_intent_id": intent.id,
            "client_secret": intent.client_secret,
            "amount": order.total_amount,
            "currency": currency,
            "order_id": order.id,
            "demo_mode": self.processor.demo_mode,
        }

    async def confirm_payment(
        self,
        payment_intent_id: str,
        actor: Optional[Actor] = None,
    ) -> Order:
        """
        Reconcile an order with the processor's view of its intent.

        Args:
            payment_intent_id: Intent to confirm
            actor: Caller; when given it must be the order's buyer

        Returns:
            The order after reconciliation

        Raises:
            OrderNotFoundError: If no order matches the intent
            OrderAccessError: If the actor is not the order's buyer
            PaymentProcessorError: If the processor fails
        """
        intent = await self.processor.retrieve_intent(payment_intent_id)
        order = await self._find_order_for_intent(intent)
        if order is None:
            raise OrderNotFoundError(
                "No order found for payment intent",
                payment_intent_id=payment_intent_id,
            )
        if actor is not None and not actor.is_party(order.buyer):
            raise OrderAccessError(
                "Only the buyer can confirm this payment",
                order_id=str(order.id),
            )

        if intent.status == INTENT_SUCCEEDED:
            await self._apply_success(order, intent, actor)
        elif intent.status in INTENT_FAILED_STATUSES:
            await self._apply_failure(order, actor)
        else:
            logger.info(
                "Payment not yet settled",
                order_id=str(order.id),
                intent_status=intent.status,
            )
        return order

    async def refund_payment(
        self,
        order_id: uuid.UUID,
        actor: Actor,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Refund a completed payment and cancel the order.

        Orders that were already cancelled or rejected when the payment
        settled keep their status; only the payment is refunded.

        Args:
            order_id: Order to refund
            actor: Supplier of the order
            amount: Optional partial amount, at most the paid amount
            reason: Optional refund reason

        Returns:
            The refunded, cancelled order

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessError: If the actor is not the order's supplier
            PaymentValidationError: If payment is not completed or the
                amount exceeds the paid amount
            InvalidTransitionError: If the order can no longer be cancelled
            PaymentProcessorError: If the processor fails
        """
        order = await self._get_order(order_id)
        if not actor.is_party(order.supplier):
            raise OrderAccessError(
                "Only the supplier can refund this order",
                order_id=str(order_id),
            )
        if order.payment_status != PaymentStatus.COMPLETED or not order.payment_intent_id:
            raise PaymentValidationError(
                "Only completed payments can be refunded",
                order_id=str(order_id),
                payment_status=order.payment_status.value,
            )
        paid = order.paid_amount or order.total_amount
        if amount is not None and (amount <= 0 or amount > paid):
            raise PaymentValidationError(
                "Refund amount must be positive and at most the paid amount",
                order_id=str(order_id),
                amount=str(amount),
                paid_amount=str(paid),
            )
        # A payment captured after the order closed is refunded without a
        # transition; the order is already terminal.
        already_closed = order.status in CLOSED_ORDER_STATUSES
        if not already_closed:
            self.state_machine.validate_transition(order, OrderStatus.CANCELLED)

        refund = await self.processor.create_refund(
            order.payment_intent_id,
            amount=amount,
            reason=reason,
        )

        order.payment_status = PaymentStatus.REFUNDED
        if not already_closed:
            self.state_machine.apply_transition(
                order,
                OrderStatus.CANCELLED,
                actor_id=actor.id,
                actor_role=actor.role,
                notes=reason or "Payment refunded",
            )
        await self.order_repository.save(order)

        await self.notification_service.notify(
            recipient=order.buyer,
            notification_type=NotificationType.PAYMENT_REFUNDED,
            sender=actor,
            related_order_id=order.id,
            priority=NotificationPriority.HIGH,
            order_number=order.order_number,
            amount=amount if amount is not None else paid,
        )

        logger.info(
            "Payment refunded",
            order_id=str(order.id),
            refund_id=refund.id,
            amount=str(amount if amount is not None else paid),
        )
        return order

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """
        Verify and apply a processor webhook delivery.

        The signature is checked before anything else. Events already in the
        ledger are acknowledged without running a handler.

        Returns:
            Dictionary with received, event_id, event_type, duplicate and handled

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
        """
        event = self.processor.construct_event(payload, signature)

        intent_id = event.data.get("id") if event.type.startswith("payment_intent.") else None
        recorded = await self.payment_repository.record_event(
            event.id,
            event.type,
            payment_intent_id=intent_id,
        )
        result = {
            "received": True,
            "event_id": event.id,
            "event_type": event.type,
            "duplicate": not recorded,
            "handled": False,
        }
        if not recorded:
            logger.info("Duplicate webhook event ignored", event_id=event.id)
            return result

        handlers = {
            "payment_intent.succeeded": self._on_intent_succeeded,
            "payment_intent.payment_failed": self._on_intent_failed,
            "payment_intent.canceled": self._on_intent_canceled,
        }
        handler = handlers.get(event.type)
        if handler is None:
            logger.info("Unhandled webhook event type", event_type=event.type, event_id=event.id)
            return result

        intent = event.payment_intent
        order = await self._find_order_for_intent(intent)
        if order is None:
            logger.warning(
                "Webhook for unknown payment intent",
                event_id=event.id,
                payment_intent_id=intent.id,
            )
            return result

        result["handled"] = await handler(order, intent)
        result["order_id"] = order.id
        logger.info(
            "Webhook processed",
            event_id=event.id,
            event_type=event.type,
            order_id=str(order.id),
            handled=result["handled"],
        )
        return result

    async def get_payment_history(
        self,
        actor: Actor,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """
        List the actor's orders with a settled or failed payment.

        Returns:
            Dictionary with items, total, page, limit and per-status totals
        """
        party = actor.party
        if party is None:
            raise OrderAccessError("Only buyers and suppliers have payment history")
        items, total = await self.order_repository.list_for_party(
            party,
            side=None,
            offset=(page - 1) * limit,
            limit=limit,
            payment_statuses=HISTORY_STATUSES,
        )
        rows = await self.order_repository.totals_by_payment_status(party, HISTORY_STATUSES)
        totals = {
            status.value: {"count": 0, "total_amount": Decimal("0.00")}
            for status in HISTORY_STATUSES
        }
        for row in rows:
            totals[row["payment_status"].value] = {
                "count": row["count"],
                "total_amount": Decimal(str(row["total_amount"])),
            }
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "totals": totals,
        }

    async def _on_intent_succeeded(self, order: Order, intent: PaymentIntent) -> bool:
        if order.payment_status in SETTLED_STATUSES:
            return False
        await self._apply_success(order, intent)
        return True

    async def _on_intent_failed(self, order: Order, intent: PaymentIntent) -> bool:
        if order.payment_status in SETTLED_STATUSES or order.payment_status == PaymentStatus.FAILED:
            return False
        await self._apply_failure(order)
        return True

    async def _on_intent_canceled(self, order: Order, intent: PaymentIntent) -> bool:
        if order.payment_status in SETTLED_STATUSES or order.payment_status == PaymentStatus.CANCELLED:
            return False
        order.payment_status = PaymentStatus.CANCELLED
        await self.order_repository.save(order)
        logger.info("Payment cancelled", order_id=str(order.id), payment_intent_id=intent.id)
        return True

    async def _apply_success(
        self,
        order: Order,
        intent: PaymentIntent,
        actor: Optional[Actor] = None,
    ) -> None:
        if order.payment_status == PaymentStatus.COMPLETED:
            return

        order.payment_status = PaymentStatus.COMPLETED
        order.paid_amount = from_minor_units(intent.amount) if intent.amount else order.total_amount
        order.payment_date = datetime.now(timezone.utc)
        order.payment_transaction_id = intent.transaction_id or intent.id
        if order.payment_intent_id is None:
            order.payment_intent_id = intent.id

        if can_transition(order.status, OrderStatus.CONFIRMED):
            self.state_machine.apply_transition(
                order,
                OrderStatus.CONFIRMED,
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                notes="Payment completed",
            )
        await self.order_repository.save(order)

        await self.notification_service.notify(
            recipient=order.supplier,
            notification_type=NotificationType.PAYMENT_SUCCESSFUL,
            sender=actor,
            related_order_id=order.id,
            priority=NotificationPriority.HIGH,
            order_number=order.order_number,
            amount=order.paid_amount,
        )
        logger.info(
            "Payment completed",
            order_id=str(order.id),
            payment_intent_id=intent.id,
            paid_amount=str(order.paid_amount),
        )

    async def _apply_failure(self, order: Order, actor: Optional[Actor] = None) -> None:
        if order.payment_status in SETTLED_STATUSES or order.payment_status == PaymentStatus.FAILED:
            return

        order.payment_status = PaymentStatus.FAILED
        await self.order_repository.save(order)

        await self.notification_service.notify(
            recipient=order.buyer,
            notification_type=NotificationType.PAYMENT_FAILED,
            sender=actor,
            related_order_id=order.id,
            order_number=order.order_number,
        )
        logger.warning("Payment failed", order_id=str(order.id))

    async def _find_order_for_intent(self, intent: PaymentIntent) -> Optional[Order]:
        order = None
        if intent.order_id is not None:
            order = await self.order_repository.get_by_id(intent.order_id)
        if order is None:
            order = await self.order_repository.get_by_payment_intent_id(intent.id)
        return order

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order
