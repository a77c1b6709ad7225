"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata and
string-based relationship targets resolve.
"""

from marketplace.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from marketplace.database.models.account import Buyer, Supplier
from marketplace.database.models.notification import Notification
from marketplace.database.models.order import Order, OrderItem, OrderStatusHistory
from marketplace.database.models.party import PartyKind, PartyRef, UserRole
from marketplace.database.models.payment import ProcessedWebhookEvent
from marketplace.database.models.product import PriceHistoryEntry, Product
from marketplace.database.models.rating import Rating
from marketplace.database.models.reservation import Reservation

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Buyer",
    "Supplier",
    "Notification",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "PartyKind",
    "PartyRef",
    "UserRole",
    "ProcessedWebhookEvent",
    "PriceHistoryEntry",
    "Product",
    "Rating",
    "Reservation",
]
