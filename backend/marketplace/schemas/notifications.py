"""
Notification schemas.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from marketplace.database.models.notification import NotificationPriority, NotificationType
from marketplace.database.models.party import PartyKind, UserRole


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_kind: PartyKind
    recipient_id: UUID
    sender_role: Optional[UserRole] = None
    sender_id: Optional[UUID] = None
    type: NotificationType
    title: str
    message: str
    related_order_id: Optional[UUID] = None
    related_reservation_id: Optional[UUID] = None
    related_product_id: Optional[UUID] = None
    is_read: bool
    read_at: Optional[datetime] = None
    priority: NotificationPriority
    data: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread_count: int
    page: int
    limit: int


class PartyRefSchema(BaseModel):
    kind: PartyKind
    id: UUID


class BulkNotificationRequest(BaseModel):
    """Same notification sent to several recipients."""

    recipients: list[PartyRefSchema] = Field(..., min_length=1, max_length=1000)
    type: NotificationType = NotificationType.GENERAL
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    priority: NotificationPriority = NotificationPriority.MEDIUM


class TypeCounts(BaseModel):
    type: NotificationType
    total: int
    unread: int


class NotificationStatisticsResponse(BaseModel):
    total: int
    unread: int
    by_type: list[TypeCounts]


class CountResponse(BaseModel):
    count: int
