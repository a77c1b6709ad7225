"""
Order data access repository.

This module implements the OrderRepository class providing async methods for
persisting orders with their items and history, looking orders up by id or
payment intent, role-scoped listings and per-status aggregates.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ConflictError, UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.order import (
    Order,
    OrderStatus,
    PaymentStatus,
    order_number_seq,
)
from marketplace.database.models.party import PartyRef, party_matches

logger = get_logger(__name__)


class OrderRepositoryError(UnexpectedError):
    """Raised when an order query or write fails."""

    error_code = "ORDER_STORAGE_ERROR"


class DuplicateOrderNumberError(ConflictError):
    """Raised when a generated order number collides with an existing one."""


class OrderRepository:
    """
    Repository for order data access operations.

    Orders are loaded with their items and status history (selectin), so
    callers may mutate them in memory and flush.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, order: Order) -> Order:
        """
        Persist a new order with its items and history.

        Raises:
            DuplicateOrderNumberError: If the order number already exists
            OrderRepositoryError: On any other storage failure
        """
        try:
            self.session.add(order)
            await self.session.flush()
            logger.info(
                "Order persisted",
                order_id=str(order.id),
                order_number=order.order_number,
                item_count=len(order.items),
            )
            return order
        except IntegrityError as e:
            logger.error(
                "Order integrity violation",
                order_number=order.order_number,
                error=str(e),
            )
            raise DuplicateOrderNumberError(
                "Order number already exists",
                order_number=order.order_number,
            ) from e
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to create order",
                order_number=order.order_number,
                error=str(e),
            ) from e

    async def save(self, order: Order) -> Order:
        """Flush in-memory changes of an order."""
        try:
            await self.session.flush()
            return order
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to update order",
                order_id=str(order.id),
                error=str(e),
            ) from e

    async def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        try:
            return await self.session.get(Order, order_id)
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to load order",
                order_id=str(order_id),
                error=str(e),
            ) from e

    async def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Order]:
        try:
            return await self.session.scalar(
                select(Order).where(Order.payment_intent_id == payment_intent_id)
            )
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to load order by payment intent",
                payment_intent_id=payment_intent_id,
                error=str(e),
            ) from e

    async def next_order_sequence(self) -> int:
        """Draw the next value of the order number sequence."""
        try:
            return int(await self.session.scalar(select(order_number_seq.next_value())))
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to draw order number sequence", error=str(e)
            ) from e

    def _party_criteria(self, party: PartyRef, side: Optional[str]) -> Any:
        if side == "buyer":
            return party_matches(Order, "buyer", party)
        if side == "supplier":
            return party_matches(Order, "supplier", party)
        return or_(
            party_matches(Order, "buyer", party),
            party_matches(Order, "supplier", party),
        )

    async def list_for_party(
        self,
        party: PartyRef,
        side: Optional[str],
        offset: int,
        limit: int,
        status: Optional[OrderStatus] = None,
        payment_statuses: Optional[Sequence[PaymentStatus]] = None,
    ) -> tuple[list[Order], int]:
        """
        List orders of a party, newest first.

        Args:
            party: Party whose orders to list
            side: "buyer", "supplier" or None for both sides
            offset: Rows to skip
            limit: Page size
            status: Optional order status filter
            payment_statuses: Optional payment status filter

        Returns:
            Tuple of (page of orders, total matching count)
        """
        criteria = [self._party_criteria(party, side)]
        if status is not None:
            criteria.append(Order.status == status)
        if payment_statuses:
            criteria.append(Order.payment_status.in_(list(payment_statuses)))

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Order).where(*criteria)
            )
            result = await self.session.scalars(
                select(Order)
                .where(*criteria)
                .order_by(Order.created_at.desc(), Order.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to list orders",
                party=str(party),
                error=str(e),
            ) from e

    async def totals_by_status(
        self, party: PartyRef, side: Optional[str]
    ) -> list[dict[str, Any]]:
        """Order count and amount per order status."""
        try:
            result = await self.session.execute(
                select(
                    Order.status,
                    func.count().label("count"),
                    func.coalesce(func.sum(Order.total_amount), 0).label("total_amount"),
                )
                .where(self._party_criteria(party, side))
                .group_by(Order.status)
            )
            return [
                {"status": row.status, "count": int(row.count), "total_amount": row.total_amount}
                for row in result
            ]
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to aggregate orders",
                party=str(party),
                error=str(e),
            ) from e

    async def totals_by_payment_status(
        self,
        party: PartyRef,
        payment_statuses: Sequence[PaymentStatus],
    ) -> list[dict[str, Any]]:
        """Order count and amount per payment status."""
        try:
            result = await self.session.execute(
                select(
                    Order.payment_status,
                    func.count().label("count"),
                    func.coalesce(func.sum(Order.total_amount), 0).label("total_amount"),
                )
                .where(
                    self._party_criteria(party, None),
                    Order.payment_status.in_(list(payment_statuses)),
                )
                .group_by(Order.payment_status)
            )
            return [
                {
                    "payment_status": row.payment_status,
                    "count": int(row.count),
                    "total_amount": row.total_amount,
                }
                for row in result
            ]
        except SQLAlchemyError as e:
            raise OrderRepositoryError(
                "Failed to aggregate payments",
                party=str(party),
                error=str(e),
            ) from e
