"""
Pytest configuration and shared test fixtures.

This module provides actors for every role, factories building transient ORM
objects (never flushed to a database), a mocked notification service and a
FastAPI test client whose service dependencies are overridden per test.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Generator, Optional
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from marketplace.api.rate_limit import limiter
from marketplace.core.security import Actor, create_access_token
from marketplace.database.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from marketplace.database.models.party import PartyRef, UserRole
from marketplace.database.models.product import Product
from marketplace.database.models.reservation import (
    Reservation,
    ReservationPaymentMethod,
    ReservationStatus,
)
from marketplace.main import app
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.service import OrderService


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def buyer_actor() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.BUYER, email="buyer@example.com")


@pytest.fixture
def other_buyer_actor() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.BUYER, email="other@example.com")


@pytest.fixture
def supplier_actor() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.SUPPLIER, email="supplier@example.com")


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.ADMIN, email="admin@example.com")


# ============================================================================
# Entity factories
# ============================================================================


@pytest.fixture
def make_product() -> Callable[..., Product]:
    """
    Build a transient product with its initial price logged.

    Example:
        product = make_product(owner=supplier_actor.party, price="120.00")
    """

    def factory(
        owner: PartyRef,
        price: str = "100.00",
        stock: int = 10,
        name: str = "Basmati Rice",
        is_active: bool = True,
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            name=name,
            unit="kg",
            stock=stock,
            is_active=is_active,
            price_history=[],
        )
        product.owner = owner
        product.add_price_history(Decimal(price), editor=owner, reason="Initial price")
        return product

    return factory


@pytest.fixture
def make_order(make_product) -> Callable[..., Order]:
    """Build a transient order through the same path the service uses."""

    def factory(
        buyer: PartyRef,
        supplier: PartyRef,
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        unit_price: str = "100.00",
        quantity: int = 2,
        payment_intent_id: Optional[str] = None,
    ) -> Order:
        product = make_product(owner=supplier, price=unit_price)
        order = OrderService.build_order(
            buyer=buyer,
            supplier=supplier,
            priced_lines=[(product, quantity, Decimal(unit_price))],
            shipping_address={"recipient_name": "Nimal", "city": "Colombo"},
            payment_method=PaymentMethod.STRIPE,
            order_number="ORD-1700000000000-0001",
        )
        order.status = status
        order.payment_status = payment_status
        order.payment_intent_id = payment_intent_id
        return order

    return factory


@pytest.fixture
def make_reservation() -> Callable[..., Reservation]:
    def factory(
        shop: PartyRef,
        requester: Optional[PartyRef] = None,
        status: ReservationStatus = ReservationStatus.PENDING,
        product_id: Optional[uuid.UUID] = None,
        quantity: int = 5,
        payment_method: ReservationPaymentMethod = ReservationPaymentMethod.COD,
        expires_at: Optional[datetime] = None,
        **fields: Any,
    ) -> Reservation:
        reservation = Reservation(
            id=uuid.uuid4(),
            reservation_number="RES-1700000000000-0001",
            requester_name="Kamal Stores",
            requester_contact="0771234567",
            requester_location="Kandy",
            product_id=product_id,
            product_name="Basmati Rice",
            quantity=quantity,
            payment_method=payment_method,
            status=status,
            expires_at=expires_at or datetime.now(timezone.utc) + timedelta(days=7),
            **fields,
        )
        reservation.clear_bank_details()
        reservation.shop = shop
        reservation.requester = requester
        return reservation

    return factory


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def mock_notification_service() -> AsyncMock:
    """Notification service mock; ``notify`` calls are inspected by tests."""
    return AsyncMock(spec=NotificationService)


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Test client without lifespan, so no database or sweep task is started.

    Tests register ``app.dependency_overrides``; they are cleared afterwards.
    """
    limiter.enabled = False
    client = TestClient(app, raise_server_exceptions=False)
    yield client
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def auth_headers() -> Callable[[Actor], dict[str, str]]:
    def factory(actor: Actor) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(actor)}"}

    return factory
