"""
Tests for the order status transition table and state machine.
"""

import itertools

import pytest

from marketplace.database.models.order import OrderStatus
from marketplace.database.models.party import UserRole
from marketplace.services.orders.state_machine import (
    ORDER_STATUS_TRANSITIONS,
    InvalidTransitionError,
    OrderStateMachine,
    can_transition,
    get_allowed_transitions,
)


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def state_machine() -> OrderStateMachine:
    return OrderStateMachine()


@pytest.fixture
def pending_order(make_order, buyer_actor, supplier_actor):
    return make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)


# ============================================================================
# Unit Tests - Transition Table
# ============================================================================


class TestTransitionTable:
    """Test the literal transition table."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.PENDING, OrderStatus.REJECTED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        ],
    )
    def test_allowed_transitions(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.CONFIRMED, OrderStatus.REJECTED),
            (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
            (OrderStatus.PENDING, OrderStatus.PENDING),
        ],
    )
    def test_disallowed_transitions(self, current, target):
        assert not can_transition(current, target)

    @pytest.mark.parametrize(
        "status",
        [OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REJECTED],
    )
    def test_terminal_statuses_have_no_exits(self, status):
        assert get_allowed_transitions(status) == set()
        assert status.is_terminal

    def test_allowed_transitions_returns_copy(self):
        allowed = get_allowed_transitions(OrderStatus.PENDING)
        allowed.clear()

        assert ORDER_STATUS_TRANSITIONS[OrderStatus.PENDING]


# ============================================================================
# Unit Tests - State Machine
# ============================================================================


class TestOrderStateMachine:
    """Test validating and applying transitions on orders."""

    def test_apply_transition_appends_history(self, state_machine, pending_order, supplier_actor):
        """
        Verifies:
        - Status moves to the target
        - Exactly one history entry is appended with actor and notes
        """
        # Arrange
        history_before = len(pending_order.status_history)

        # Act
        entry = state_machine.apply_transition(
            pending_order,
            OrderStatus.CONFIRMED,
            actor_id=supplier_actor.id,
            actor_role=UserRole.SUPPLIER,
            notes="Packed tomorrow",
        )

        # Assert
        assert pending_order.status == OrderStatus.CONFIRMED
        assert len(pending_order.status_history) == history_before + 1
        assert pending_order.status_history[-1] is entry
        assert entry.status == OrderStatus.CONFIRMED
        assert entry.actor_id == supplier_actor.id
        assert entry.actor_role == UserRole.SUPPLIER
        assert entry.notes == "Packed tomorrow"

    def test_invalid_transition_leaves_order_untouched(self, state_machine, pending_order):
        """
        Verifies:
        - InvalidTransitionError is raised with both states
        - Neither status nor history change
        """
        # Arrange
        history_before = len(pending_order.status_history)

        # Act
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.apply_transition(pending_order, OrderStatus.DELIVERED)

        # Assert
        assert exc_info.value.current_state == OrderStatus.PENDING
        assert exc_info.value.target_state == OrderStatus.DELIVERED
        assert exc_info.value.context["allowed_transitions"] == [
            "cancelled",
            "confirmed",
            "rejected",
        ]
        assert pending_order.status == OrderStatus.PENDING
        assert len(pending_order.status_history) == history_before

    def test_invalid_transition_is_client_error(self, state_machine, pending_order):
        with pytest.raises(InvalidTransitionError) as exc_info:
            state_machine.validate_transition(pending_order, OrderStatus.PENDING)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "INVALID_TRANSITION"

    def test_full_lifecycle(self, state_machine, pending_order):
        for target in (
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ):
            state_machine.apply_transition(pending_order, target)

        assert pending_order.status == OrderStatus.DELIVERED
        assert [entry.status for entry in pending_order.status_history] == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]


# ============================================================================
# Unit Tests - Every Status Pair
# ============================================================================


class TestEveryStatusPair:
    """Every (current, requested) pair is decided by the table alone."""

    def test_table_covers_every_status(self):
        assert set(ORDER_STATUS_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize(
        "current,target",
        list(itertools.product(OrderStatus, OrderStatus)),
        ids=lambda status: status.value,
    )
    def test_apply_transition(
        self, state_machine, make_order, buyer_actor, supplier_actor, current, target
    ):
        """
        Verifies:
        - Listed pairs move the order and append exactly one history entry
        - Unlisted pairs raise and change neither status nor history
        """
        # Arrange
        order = make_order(
            buyer=buyer_actor.party, supplier=supplier_actor.party, status=current
        )
        history_before = list(order.status_history)

        # Act / Assert
        if target in ORDER_STATUS_TRANSITIONS[current]:
            entry = state_machine.apply_transition(order, target)

            assert order.status == target
            assert order.status_history[:-1] == history_before
            assert order.status_history[-1] is entry
            assert entry.status == target
        else:
            with pytest.raises(InvalidTransitionError) as exc_info:
                state_machine.apply_transition(order, target)

            assert exc_info.value.current_state == current
            assert exc_info.value.target_state == target
            assert order.status == current
            assert order.status_history == history_before
