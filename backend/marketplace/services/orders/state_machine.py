"""Order state machine with a literal transition table.

The table below is the whole rule set: a transition is allowed if and only if
the target is listed for the current status. Same-status requests are not
special-cased and fail like any other unlisted transition.
"""

import uuid
from typing import Any, Dict, Optional, Set

from marketplace.core.exceptions import ConflictError
from marketplace.core.logging import get_logger
from marketplace.database.models.order import Order, OrderStatus, OrderStatusHistory
from marketplace.database.models.party import UserRole

logger = get_logger(__name__)

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.SHIPPED: {
        OrderStatus.DELIVERED,
    },
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REJECTED: set(),
}


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not in the transition table."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_state: Any,
        target_state: Any,
        **context: Any,
    ):
        super().__init__(
            message,
            current_state=getattr(current_state, "value", current_state),
            target_state=getattr(target_state, "value", target_state),
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


def get_allowed_transitions(status: OrderStatus) -> Set[OrderStatus]:
    """Statuses reachable from ``status`` in one step."""
    return set(ORDER_STATUS_TRANSITIONS.get(status, set()))


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_STATUS_TRANSITIONS.get(current, set())


class OrderStateMachine:
    """Validates and applies order status transitions."""

    def validate_transition(self, order: Order, target_status: OrderStatus) -> None:
        """
        Check a transition against the table.

        Args:
            order: Order to transition
            target_status: Requested status

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        current_status = order.status
        if not can_transition(current_status, target_status):
            allowed = sorted(s.value for s in get_allowed_transitions(current_status))
            logger.warning(
                "Invalid order transition requested",
                order_id=str(order.id),
                current_status=current_status.value,
                target_status=target_status.value,
            )
            raise InvalidTransitionError(
                f"Cannot change order status from {current_status.value} "
                f"to {target_status.value}",
                current_state=current_status,
                target_state=target_status,
                allowed_transitions=allowed,
            )

    def apply_transition(
        self,
        order: Order,
        target_status: OrderStatus,
        actor_id: Optional[uuid.UUID] = None,
        actor_role: Optional[UserRole] = None,
        notes: Optional[str] = None,
    ) -> OrderStatusHistory:
        """
        Validate, then move the order and append one history entry.

        Raises:
            InvalidTransitionError: If the transition is not allowed; the
                order is left untouched
        """
        self.validate_transition(order, target_status)
        previous = order.status
        entry = order.record_status(
            target_status,
            actor_id=actor_id,
            actor_role=actor_role,
            notes=notes,
        )

        logger.info(
            "Order status transitioned",
            order_id=str(order.id),
            transition=f"{previous.value}->{target_status.value}",
            actor_id=str(actor_id) if actor_id else None,
        )
        return entry
