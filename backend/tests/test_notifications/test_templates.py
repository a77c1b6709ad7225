"""
Tests for notification text templates.
"""

from decimal import Decimal

import pytest

from marketplace.database.models.notification import NotificationType
from marketplace.services.notifications.templates import (
    NOTIFICATION_TEMPLATES,
    NotificationTemplateError,
    NotificationTemplates,
)


@pytest.fixture
def templates() -> NotificationTemplates:
    return NotificationTemplates(currency="lkr")


class TestNotificationTemplates:
    """Test rendering titles and messages."""

    def test_every_workflow_type_has_a_template(self):
        workflow_types = {t for t in NotificationType if t != NotificationType.GENERAL}

        assert set(NOTIFICATION_TEMPLATES) == workflow_types

    def test_currency_filter(self, templates):
        title, message = templates.render(
            NotificationType.PAYMENT_REFUNDED,
            amount=Decimal("2500"),
            order_number="ORD-1-0001",
        )

        assert title == "Payment Refunded"
        assert message == "LKR 2,500.00 has been refunded for order #ORD-1-0001."

    def test_optional_tracking_number(self, templates):
        _, without = templates.render(
            NotificationType.ORDER_SHIPPED, order_number="ORD-1", tracking_number=None
        )
        _, with_tracking = templates.render(
            NotificationType.ORDER_SHIPPED, order_number="ORD-1", tracking_number="TRK-9"
        )

        assert without == "Order #ORD-1 has been shipped."
        assert with_tracking == "Order #ORD-1 has been shipped. Tracking number: TRK-9."

    def test_reservation_without_product_name(self, templates):
        _, message = templates.render(
            NotificationType.RESERVATION_RECEIVED,
            requester_name="Kamal",
            quantity=5,
            product_name=None,
            reservation_number="RES-1",
        )

        assert message == "Kamal requested 5 of your product (#RES-1)."

    def test_missing_variable_raises(self, templates):
        with pytest.raises(NotificationTemplateError) as exc_info:
            templates.render(NotificationType.ORDER_CONFIRMED)

        assert exc_info.value.notification_type == "order_confirmed"

    def test_unknown_type_raises(self, templates):
        with pytest.raises(NotificationTemplateError):
            templates.render(NotificationType.GENERAL)
