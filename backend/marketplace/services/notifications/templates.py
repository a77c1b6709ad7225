"""
Notification text templates rendered with Jinja2.

Every workflow notification type has a title and a message template. Context
variables are strict: a missing variable is a programming error and raises
NotificationTemplateError instead of rendering an empty string.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Any, Optional, Union

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from marketplace.core.config import get_settings
from marketplace.database.models.notification import NotificationType

NOTIFICATION_TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.ORDER_CREATED: (
        "New Order",
        "Order #{{ order_number }} worth {{ amount | currency }} has been placed.",
    ),
    NotificationType.ORDER_CONFIRMED: (
        "Order Confirmed",
        "Order #{{ order_number }} has been confirmed.",
    ),
    NotificationType.ORDER_PROCESSING: (
        "Order Processing",
        "Order #{{ order_number }} is being prepared.",
    ),
    NotificationType.ORDER_SHIPPED: (
        "Order Shipped",
        "Order #{{ order_number }} has been shipped."
        "{% if tracking_number %} Tracking number: {{ tracking_number }}.{% endif %}",
    ),
    NotificationType.ORDER_DELIVERED: (
        "Order Delivered",
        "Order #{{ order_number }} has been delivered.",
    ),
    NotificationType.ORDER_CANCELLED: (
        "Order Cancelled",
        "Order #{{ order_number }} has been cancelled.",
    ),
    NotificationType.ORDER_REJECTED: (
        "Order Rejected",
        "Order #{{ order_number }} has been rejected.",
    ),
    NotificationType.RESERVATION_RECEIVED: (
        "New Reservation Request",
        "{{ requester_name }} requested {{ quantity }} of "
        "{{ product_name or 'your product' }} (#{{ reservation_number }}).",
    ),
    NotificationType.RESERVATION_ACCEPTED: (
        "Reservation Accepted",
        "Your reservation #{{ reservation_number }} has been accepted."
        "{% if message %} {{ message }}{% endif %}",
    ),
    NotificationType.RESERVATION_REJECTED: (
        "Reservation Rejected",
        "Your reservation #{{ reservation_number }} has been rejected."
        "{% if message %} {{ message }}{% endif %}",
    ),
    NotificationType.RESERVATION_CANCELLED: (
        "Reservation Cancelled",
        "Reservation #{{ reservation_number }} was cancelled by the requester.",
    ),
    NotificationType.PAYMENT_SUCCESSFUL: (
        "Payment Received",
        "Payment of {{ amount | currency }} received for order #{{ order_number }}.",
    ),
    NotificationType.PAYMENT_FAILED: (
        "Payment Failed",
        "Payment for order #{{ order_number }} failed. Please try again.",
    ),
    NotificationType.PAYMENT_REFUNDED: (
        "Payment Refunded",
        "{{ amount | currency }} has been refunded for order #{{ order_number }}.",
    ),
    NotificationType.RATING_RECEIVED: (
        "New Rating Received",
        "You received a {{ score }}-star rating."
        "{% if comment %} \"{{ comment }}\"{% endif %}",
    ),
    NotificationType.PRICE_UPDATED: (
        "Price Updated",
        "The price of {{ product_name }} changed to {{ amount | currency }}.",
    ),
    NotificationType.STOCK_LOW: (
        "Stock Running Low",
        "Only {{ stock }} left of {{ product_name }}.",
    ),
}


class NotificationTemplateError(Exception):
    """Raised when a notification template cannot be rendered."""

    def __init__(self, message: str, notification_type: Optional[str] = None):
        super().__init__(message)
        self.notification_type = notification_type


class NotificationTemplates:
    """Renders titles and messages for workflow notifications."""

    def __init__(
        self,
        templates: Optional[dict[NotificationType, tuple[str, str]]] = None,
        currency: Optional[str] = None,
    ):
        """
        Initialize the template environment.

        Args:
            templates: Title/message template pairs by type
            currency: Currency code used by the ``currency`` filter
        """
        templates = templates or NOTIFICATION_TEMPLATES
        sources: dict[str, str] = {}
        for notification_type, (title, message) in templates.items():
            sources[f"{notification_type.value}/title"] = title
            sources[f"{notification_type.value}/message"] = message

        self.currency = (currency or get_settings().payment_currency).upper()
        self.env = Environment(
            loader=DictLoader(sources),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = self._format_currency

    def _format_currency(self, value: Union[Decimal, float, int, str]) -> str:
        return f"{self.currency} {Decimal(str(value)):,.2f}"

    def render(
        self,
        notification_type: NotificationType,
        **context: Any,
    ) -> tuple[str, str]:
        """
        Render the title and message for a notification type.

        Args:
            notification_type: Type to render
            **context: Template variables

        Returns:
            Tuple of (title, message)

        Raises:
            NotificationTemplateError: If no template exists or rendering fails
        """
        try:
            title = self.env.get_template(f"{notification_type.value}/title")
            message = self.env.get_template(f"{notification_type.value}/message")
            return title.render(**context).strip(), message.render(**context).strip()
        except TemplateError as e:
            raise NotificationTemplateError(
                f"Failed to render {notification_type.value} notification: {e}",
                notification_type=notification_type.value,
            ) from e


@lru_cache
def get_notification_templates() -> NotificationTemplates:
    """Shared template renderer."""
    return NotificationTemplates()
