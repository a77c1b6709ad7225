"""
Test suite for OrderService business logic.

Covers order placement against stock, the transition workflow with its
notifications, role-scoped reads and statistics. Repositories are mocked;
orders and products are transient ORM objects.
"""

import re
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from marketplace.core.exceptions import ValidationError
from marketplace.database.models.notification import NotificationPriority, NotificationType
from marketplace.database.models.order import OrderStatus, PaymentMethod
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.service import (
    InsufficientStockError,
    MixedSupplierError,
    OrderAccessError,
    OrderLine,
    OrderNotFoundError,
    OrderProductNotFoundError,
    OrderService,
    generate_order_number,
)
from marketplace.services.orders.state_machine import InvalidTransitionError
from marketplace.services.products.repository import ProductRepository


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def mock_order_repository() -> AsyncMock:
    repository = AsyncMock(spec=OrderRepository)
    repository.next_order_sequence.return_value = 42
    repository.add.side_effect = lambda order: order
    repository.save.side_effect = lambda order: order
    return repository


@pytest.fixture
def mock_product_repository() -> AsyncMock:
    return AsyncMock(spec=ProductRepository)


@pytest.fixture
def order_service(
    mock_order_repository, mock_product_repository, mock_notification_service
) -> OrderService:
    return OrderService(
        repository=mock_order_repository,
        product_repository=mock_product_repository,
        notification_service=mock_notification_service,
    )


@pytest.fixture
def shipping_address() -> dict:
    return {
        "recipient_name": "Nimal Perera",
        "address_line1": "12 Temple Road",
        "city": "Colombo",
        "phone": "0771234567",
    }


# ============================================================================
# Unit Tests - Order Numbers
# ============================================================================


class TestOrderNumber:
    """Test order number generation."""

    def test_format(self):
        assert generate_order_number(7, now_ms=1700000000000) == "ORD-1700000000000-0007"

    def test_uses_current_time(self):
        assert re.fullmatch(r"ORD-\d{13}-0001", generate_order_number(1))

    def test_large_sequence_keeps_every_digit(self):
        assert generate_order_number(123456, now_ms=1700000000000) == (
            "ORD-1700000000000-123456"
        )

    async def test_same_millisecond_numbers_differ(
        self, order_service, mock_order_repository
    ):
        """
        Verifies:
        - Each number draws a fresh database sequence value
        - Numbers minted in the same millisecond do not collide
        """
        # Arrange
        mock_order_repository.next_order_sequence.side_effect = [7, 8]

        # Act
        with patch("marketplace.services.orders.service.time.time", return_value=1700000000.0):
            first = await order_service.next_order_number()
            second = await order_service.next_order_number()

        # Assert
        assert first == "ORD-1700000000000-0007"
        assert second == "ORD-1700000000000-0008"
        assert mock_order_repository.next_order_sequence.await_count == 2


# ============================================================================
# Unit Tests - Order Creation
# ============================================================================


class TestCreateOrder:
    """Test placing orders."""

    async def test_create_order_success(
        self,
        order_service,
        mock_order_repository,
        mock_product_repository,
        mock_notification_service,
        make_product,
        buyer_actor,
        supplier_actor,
        shipping_address,
    ):
        """
        Verifies:
        - Line prices are snapshotted from the product
        - Total is the sum of subtotals
        - Stock is decremented and saved
        - One pending history entry exists
        - The supplier is notified
        """
        # Arrange
        rice = make_product(owner=supplier_actor.party, price="250.00", stock=10)
        dhal = make_product(owner=supplier_actor.party, price="80.50", stock=3, name="Dhal")
        mock_product_repository.get_many_for_update.return_value = {
            rice.id: rice,
            dhal.id: dhal,
        }

        # Act
        order = await order_service.create_order(
            buyer_actor,
            [OrderLine(rice.id, 2), OrderLine(dhal.id, 3)],
            shipping_address,
            payment_method=PaymentMethod.CASH_ON_DELIVERY,
            notes="Leave at the gate",
        )

        # Assert
        assert order.buyer == buyer_actor.party
        assert order.supplier == supplier_actor.party
        assert order.status == OrderStatus.PENDING
        assert order.total_amount == Decimal("741.50")
        assert [item.price_at_time for item in order.items] == [
            Decimal("250.00"),
            Decimal("80.50"),
        ]
        assert order.order_number.endswith("-0042")
        assert order.buyer_notes == "Leave at the gate"
        assert len(order.status_history) == 1
        assert order.status_history[0].status == OrderStatus.PENDING
        assert rice.stock == 8
        assert dhal.stock == 0
        mock_product_repository.save.assert_awaited_once()
        mock_order_repository.add.assert_awaited_once_with(order)

        mock_notification_service.notify.assert_awaited_once()
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == supplier_actor.party
        assert kwargs["notification_type"] == NotificationType.ORDER_CREATED
        assert kwargs["priority"] == NotificationPriority.HIGH
        assert kwargs["order_number"] == order.order_number

    async def test_duplicate_lines_are_summed_for_stock_check(
        self,
        order_service,
        mock_product_repository,
        make_product,
        buyer_actor,
        supplier_actor,
        shipping_address,
    ):
        """
        Verifies:
        - Two lines for one product are checked against stock together
        - Nothing is written when the check fails
        """
        # Arrange
        rice = make_product(owner=supplier_actor.party, stock=5)
        mock_product_repository.get_many_for_update.return_value = {rice.id: rice}

        # Act & Assert
        with pytest.raises(InsufficientStockError) as exc_info:
            await order_service.create_order(
                buyer_actor,
                [OrderLine(rice.id, 3), OrderLine(rice.id, 3)],
                shipping_address,
            )

        assert exc_info.value.context["requested"] == 6
        assert rice.stock == 5
        mock_product_repository.save.assert_not_awaited()

    async def test_unknown_product(
        self, order_service, mock_product_repository, buyer_actor, shipping_address
    ):
        mock_product_repository.get_many_for_update.return_value = {}

        with pytest.raises(OrderProductNotFoundError):
            await order_service.create_order(
                buyer_actor, [OrderLine(uuid.uuid4(), 1)], shipping_address
            )

    async def test_inactive_product(
        self,
        order_service,
        mock_product_repository,
        make_product,
        buyer_actor,
        supplier_actor,
        shipping_address,
    ):
        product = make_product(owner=supplier_actor.party, is_active=False)
        mock_product_repository.get_many_for_update.return_value = {product.id: product}

        with pytest.raises(OrderProductNotFoundError):
            await order_service.create_order(
                buyer_actor, [OrderLine(product.id, 1)], shipping_address
            )

    async def test_mixed_suppliers_rejected(
        self,
        order_service,
        mock_product_repository,
        make_product,
        buyer_actor,
        other_buyer_actor,
        supplier_actor,
        shipping_address,
    ):
        first = make_product(owner=supplier_actor.party)
        second = make_product(owner=other_buyer_actor.party)
        mock_product_repository.get_many_for_update.return_value = {
            first.id: first,
            second.id: second,
        }

        with pytest.raises(MixedSupplierError):
            await order_service.create_order(
                buyer_actor,
                [OrderLine(first.id, 1), OrderLine(second.id, 1)],
                shipping_address,
            )

    async def test_own_products_rejected(
        self,
        order_service,
        mock_product_repository,
        make_product,
        supplier_actor,
        shipping_address,
    ):
        product = make_product(owner=supplier_actor.party)
        mock_product_repository.get_many_for_update.return_value = {product.id: product}

        with pytest.raises(ValidationError):
            await order_service.create_order(
                supplier_actor, [OrderLine(product.id, 1)], shipping_address
            )

    @pytest.mark.parametrize("lines", [[], [OrderLine(uuid.uuid4(), 0)]])
    async def test_invalid_lines(self, order_service, buyer_actor, shipping_address, lines):
        with pytest.raises(ValidationError):
            await order_service.create_order(buyer_actor, lines, shipping_address)

    async def test_admin_cannot_order(self, order_service, admin_actor, shipping_address):
        with pytest.raises(OrderAccessError):
            await order_service.create_order(
                admin_actor, [OrderLine(uuid.uuid4(), 1)], shipping_address
            )


# ============================================================================
# Unit Tests - Status Updates
# ============================================================================


class TestUpdateOrderStatus:
    """Test the status workflow through the service."""

    async def test_supplier_confirms(
        self,
        order_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        """
        Verifies:
        - Status changes and history grows by one
        - Supplier notes land on supplier_notes
        - The buyer is notified with the matching type
        """
        # Arrange
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        # Act
        result = await order_service.update_order_status(
            order.id, OrderStatus.CONFIRMED, supplier_actor, notes="Ships Monday"
        )

        # Assert
        assert result.status == OrderStatus.CONFIRMED
        assert len(result.status_history) == 2
        assert result.supplier_notes == "Ships Monday"
        mock_order_repository.save.assert_awaited_once_with(order)
        kwargs = mock_notification_service.notify.call_args.kwargs
        assert kwargs["recipient"] == buyer_actor.party
        assert kwargs["notification_type"] == NotificationType.ORDER_CONFIRMED

    async def test_delivery_records_timestamp_and_tracking(
        self, order_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.SHIPPED,
        )
        mock_order_repository.get_by_id.return_value = order

        result = await order_service.update_order_status(
            order.id, OrderStatus.DELIVERED, buyer_actor, tracking_number="TRK-1"
        )

        assert result.actual_delivery is not None
        assert result.tracking_number == "TRK-1"

    async def test_buyer_notes_land_on_buyer_notes(
        self, order_service, mock_order_repository, make_order, buyer_actor, supplier_actor
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        result = await order_service.update_order_status(
            order.id, OrderStatus.CANCELLED, buyer_actor, notes="Changed my mind"
        )

        assert result.buyer_notes == "Changed my mind"
        assert result.status_history[-1].notes == "Changed my mind"

    async def test_invalid_transition(
        self,
        order_service,
        mock_order_repository,
        mock_notification_service,
        make_order,
        buyer_actor,
        supplier_actor,
    ):
        order = make_order(
            buyer=buyer_actor.party,
            supplier=supplier_actor.party,
            status=OrderStatus.DELIVERED,
        )
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(InvalidTransitionError):
            await order_service.update_order_status(
                order.id, OrderStatus.CANCELLED, supplier_actor
            )

        mock_order_repository.save.assert_not_awaited()
        mock_notification_service.notify.assert_not_awaited()

    async def test_non_participant_denied(
        self, order_service, mock_order_repository, make_order, buyer_actor,
        other_buyer_actor, supplier_actor,
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(OrderAccessError):
            await order_service.update_order_status(
                order.id, OrderStatus.CANCELLED, other_buyer_actor
            )

    async def test_missing_order(self, order_service, mock_order_repository, buyer_actor):
        mock_order_repository.get_by_id.return_value = None

        with pytest.raises(OrderNotFoundError):
            await order_service.update_order_status(
                uuid.uuid4(), OrderStatus.CANCELLED, buyer_actor
            )


# ============================================================================
# Unit Tests - Queries
# ============================================================================


class TestOrderQueries:
    """Test role-scoped reads."""

    async def test_admin_reads_any_order(
        self, order_service, mock_order_repository, make_order, buyer_actor,
        supplier_actor, admin_actor,
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        assert await order_service.get_order(order.id, admin_actor) is order

    async def test_stranger_cannot_read(
        self, order_service, mock_order_repository, make_order, buyer_actor,
        other_buyer_actor, supplier_actor,
    ):
        order = make_order(buyer=buyer_actor.party, supplier=supplier_actor.party)
        mock_order_repository.get_by_id.return_value = order

        with pytest.raises(OrderAccessError):
            await order_service.get_order(order.id, other_buyer_actor)

    async def test_supplier_lists_supplier_side(
        self, order_service, mock_order_repository, supplier_actor
    ):
        mock_order_repository.list_for_party.return_value = ([], 0)

        result = await order_service.list_orders(
            supplier_actor, status=OrderStatus.PENDING, page=3, limit=5
        )

        assert result == {"items": [], "total": 0, "page": 3, "limit": 5}
        mock_order_repository.list_for_party.assert_awaited_once_with(
            supplier_actor.party,
            side="supplier",
            offset=10,
            limit=5,
            status=OrderStatus.PENDING,
        )

    async def test_statistics(self, order_service, mock_order_repository, buyer_actor):
        mock_order_repository.totals_by_status.return_value = [
            {"status": OrderStatus.PENDING, "count": 2, "total_amount": Decimal("300.00")},
            {"status": OrderStatus.DELIVERED, "count": 1, "total_amount": Decimal("99.50")},
        ]

        stats = await order_service.get_statistics(buyer_actor)

        assert stats["total_orders"] == 3
        assert stats["total_amount"] == Decimal("399.50")
        assert stats["by_status"]["pending"]["count"] == 2
        mock_order_repository.totals_by_status.assert_awaited_once_with(
            buyer_actor.party, "buyer"
        )
