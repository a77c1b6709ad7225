"""
Order service orchestrating the order workflow.

This module implements the OrderService class for placing orders against
product stock, moving orders through the status transition table, and
serving role-scoped order queries. Every status change appends one history
entry and notifies the counterparty.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from marketplace.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from marketplace.core.logging import get_logger, log_performance
from marketplace.core.security import Actor
from marketplace.database.models.notification import NotificationPriority, NotificationType
from marketplace.database.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from marketplace.database.models.party import PartyKind, PartyRef
from marketplace.database.models.product import Product
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.state_machine import OrderStateMachine
from marketplace.services.products.repository import ProductRepository

logger = get_logger(__name__)

ORDER_CREATED_NOTE = "Order created"


class OrderNotFoundError(NotFoundError):
    """Raised when an order does not exist."""


class OrderAccessError(AuthorizationError):
    """Raised when the caller is not a party to the order."""


class OrderProductNotFoundError(NotFoundError):
    """Raised when an ordered product does not exist or is not listed."""


class InsufficientStockError(ValidationError):
    """Raised when an ordered quantity exceeds available stock."""

    error_code = "INSUFFICIENT_STOCK"


class MixedSupplierError(ValidationError):
    """Raised when an order mixes products of different sellers."""


@dataclass(frozen=True)
class OrderLine:
    """Requested product and quantity."""

    product_id: uuid.UUID
    quantity: int


def generate_order_number(sequence: int, now_ms: Optional[int] = None) -> str:
    """Build ``ORD-<epoch ms>-<sequence:04d>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"ORD-{now_ms}-{sequence:04d}"


class OrderService:
    """
    Order workflow service.

    Attributes:
        repository: Order repository
        product_repository: Product repository used for stock checks
        notification_service: Notification dispatcher
        state_machine: Transition table enforcement
    """

    def __init__(
        self,
        repository: OrderRepository,
        product_repository: ProductRepository,
        notification_service: NotificationService,
        state_machine: Optional[OrderStateMachine] = None,
    ):
        self.repository = repository
        self.product_repository = product_repository
        self.notification_service = notification_service
        self.state_machine = state_machine or OrderStateMachine()

    async def create_order(
        self,
        actor: Actor,
        lines: Sequence[OrderLine],
        shipping_address: dict[str, Any],
        payment_method: PaymentMethod = PaymentMethod.STRIPE,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Place an order, validating every line before writing anything.

        Quantities for a product listed more than once are summed before
        the stock check.

        Args:
            actor: Ordering buyer or supplier
            lines: Requested products and quantities
            shipping_address: Delivery address document
            payment_method: Intended payment method
            notes: Buyer notes

        Returns:
            Created order with items and initial history

        Raises:
            OrderAccessError: If the actor is not a marketplace party
            ValidationError: If no lines are given or a quantity is not positive
            OrderProductNotFoundError: If a product does not exist
            InsufficientStockError: If a quantity exceeds stock
            MixedSupplierError: If products belong to different sellers
        """
        buyer = actor.party
        if buyer is None:
            raise OrderAccessError("Only buyers and suppliers can place orders")
        if not lines:
            raise ValidationError("Order must contain at least one item")

        quantities: dict[uuid.UUID, int] = {}
        for line in lines:
            if line.quantity < 1:
                raise ValidationError(
                    "Quantity must be at least 1",
                    product_id=str(line.product_id),
                )
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

        logger.info(
            "Creating order",
            buyer=str(buyer),
            product_count=len(quantities),
        )

        with log_performance(logger, "create_order", buyer=str(buyer)):
            products = await self.product_repository.get_many_for_update(list(quantities))

            supplier: Optional[PartyRef] = None
            priced_lines: list[tuple[Product, int, Decimal]] = []
            for product_id, quantity in quantities.items():
                product = products.get(product_id)
                if product is None or not product.is_active:
                    raise OrderProductNotFoundError(
                        "Product not found",
                        product_id=str(product_id),
                    )
                if quantity > product.stock:
                    raise InsufficientStockError(
                        f"Insufficient stock for {product.name}. "
                        f"Available: {product.stock}, Requested: {quantity}",
                        product_id=str(product_id),
                        available=product.stock,
                        requested=quantity,
                    )
                if supplier is None:
                    supplier = product.owner
                elif product.owner != supplier:
                    raise MixedSupplierError(
                        "All items must be from the same supplier",
                        product_id=str(product_id),
                    )
                priced_lines.append((product, quantity, product.price))

            if supplier == buyer:
                raise ValidationError("You cannot order your own products")

            order = self.build_order(
                buyer=buyer,
                supplier=supplier,
                priced_lines=priced_lines,
                shipping_address=shipping_address,
                payment_method=payment_method,
                order_number=await self.next_order_number(),
                actor=actor,
            )
            order.buyer_notes = notes

            for product, quantity, _ in priced_lines:
                product.stock -= quantity
            await self.product_repository.save(*(product for product, _, _ in priced_lines))

            order = await self.repository.add(order)

        await self.notification_service.notify(
            recipient=supplier,
            notification_type=NotificationType.ORDER_CREATED,
            sender=actor,
            related_order_id=order.id,
            priority=NotificationPriority.HIGH,
            order_number=order.order_number,
            amount=order.total_amount,
        )

        logger.info(
            "Order created successfully",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        return order

    async def next_order_number(self) -> str:
        return generate_order_number(await self.repository.next_order_sequence())

    @staticmethod
    def build_order(
        buyer: PartyRef,
        supplier: PartyRef,
        priced_lines: Sequence[tuple[Product, int, Decimal]],
        shipping_address: dict[str, Any],
        payment_method: PaymentMethod,
        order_number: str,
        actor: Optional[Actor] = None,
        note: str = ORDER_CREATED_NOTE,
    ) -> Order:
        """
        Assemble a pending order from priced lines.

        Stock is not touched; callers decide whether the order consumes it.

        Args:
            buyer: Ordering party
            supplier: Selling party
            priced_lines: (product, quantity, unit price) triples
            shipping_address: Delivery address document
            payment_method: Intended payment method
            order_number: Unique order number
            actor: Actor recorded on the initial history entry
            note: Note of the initial history entry

        Returns:
            Transient order with items and one history entry
        """
        order = Order(
            id=uuid.uuid4(),
            order_number=order_number,
            shipping_address=shipping_address,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            items=[],
            status_history=[],
        )
        order.buyer = buyer
        order.supplier = supplier

        for position, (product, quantity, unit_price) in enumerate(priced_lines):
            order.items.append(
                OrderItem(
                    id=uuid.uuid4(),
                    product_id=product.id,
                    position=position,
                    product_name=product.name,
                    quantity=quantity,
                    price_at_time=unit_price,
                    subtotal=unit_price * quantity,
                )
            )
        order.total_amount = order.items_total
        order.record_status(
            OrderStatus.PENDING,
            actor_id=actor.id if actor else None,
            actor_role=actor.role if actor else None,
            notes=note,
        )
        return order

    async def get_order(self, order_id: uuid.UUID, actor: Actor) -> Order:
        """
        Load an order visible to the actor.

        Admins may read any order.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessError: If the actor is not a party to it
        """
        order = await self._get_existing(order_id)
        if not actor.is_admin and not self._is_participant(order, actor):
            raise OrderAccessError(
                "Not authorized to view this order",
                order_id=str(order_id),
            )
        return order

    async def list_orders(
        self,
        actor: Actor,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """
        List the actor's orders.

        Buyers see orders they placed; suppliers see orders placed with them.

        Returns:
            Dictionary with items, total, page and limit
        """
        party = self._require_party(actor)
        side = "supplier" if party.kind == PartyKind.SUPPLIER else "buyer"
        items, total = await self.repository.list_for_party(
            party,
            side=side,
            offset=(page - 1) * limit,
            limit=limit,
            status=status,
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def get_statistics(self, actor: Actor) -> dict[str, Any]:
        """Order count and total amount per status for the actor's side."""
        party = self._require_party(actor)
        side = "supplier" if party.kind == PartyKind.SUPPLIER else "buyer"
        rows = await self.repository.totals_by_status(party, side)
        by_status = {
            row["status"].value: {
                "count": row["count"],
                "total_amount": Decimal(str(row["total_amount"])),
            }
            for row in rows
        }
        return {
            "total_orders": sum(entry["count"] for entry in by_status.values()),
            "total_amount": sum(
                (entry["total_amount"] for entry in by_status.values()), Decimal("0.00")
            ),
            "by_status": by_status,
        }

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor: Actor,
        notes: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> Order:
        """
        Move an order to a new status.

        Args:
            order_id: Order identifier
            new_status: Target status
            actor: Buyer or supplier of the order
            notes: Stored on the actor's own notes field and the history entry
            tracking_number: Courier tracking number to record

        Returns:
            Updated order

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderAccessError: If the actor is not the order's buyer or supplier
            InvalidTransitionError: If the transition is not allowed
        """
        order = await self._get_existing(order_id)
        if not self._is_participant(order, actor):
            logger.warning(
                "Order status update denied",
                order_id=str(order_id),
                actor_id=str(actor.id),
            )
            raise OrderAccessError(
                "Not authorized to update this order",
                order_id=str(order_id),
            )

        self.state_machine.apply_transition(
            order,
            new_status,
            actor_id=actor.id,
            actor_role=actor.role,
            notes=notes,
        )

        if notes:
            if actor.is_party(order.supplier):
                order.supplier_notes = notes
            else:
                order.buyer_notes = notes
        if tracking_number:
            order.tracking_number = tracking_number
        if new_status == OrderStatus.DELIVERED:
            order.actual_delivery = datetime.now(timezone.utc)

        order = await self.repository.save(order)

        await self.notification_service.notify(
            recipient=order.counterparty_of(actor.party),
            notification_type=NotificationType(f"order_{new_status.value}"),
            sender=actor,
            related_order_id=order.id,
            order_number=order.order_number,
            tracking_number=order.tracking_number,
        )

        logger.info(
            "Order status updated successfully",
            order_id=str(order_id),
            new_status=new_status.value,
        )
        return order

    async def _get_existing(self, order_id: uuid.UUID) -> Order:
        order = await self.repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundError("Order not found", order_id=str(order_id))
        return order

    @staticmethod
    def _is_participant(order: Order, actor: Actor) -> bool:
        return actor.is_party(order.buyer) or actor.is_party(order.supplier)

    @staticmethod
    def _require_party(actor: Actor) -> PartyRef:
        party = actor.party
        if party is None:
            raise OrderAccessError("Only buyers and suppliers have orders")
        return party
