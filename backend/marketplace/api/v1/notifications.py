"""
Notification inbox API endpoints.

Buyers and suppliers read and manage their own notifications. Admins may
broadcast a notification to a list of recipients.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import AdminActor, NotificationServiceDep, PartyActor
from marketplace.core.logging import get_logger
from marketplace.database.models.notification import NotificationType
from marketplace.database.models.party import PartyRef
from marketplace.schemas.common import ApiResponse, ok
from marketplace.schemas.notifications import (
    BulkNotificationRequest,
    CountResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationStatisticsResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get(
    "/",
    response_model=ApiResponse[NotificationListResponse],
    summary="List notifications",
    description="The caller's notifications, newest first, with the unread count.",
)
async def list_notifications(
    actor: PartyActor,
    service: NotificationServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
) -> ApiResponse[NotificationListResponse]:
    result = await service.list_notifications(
        actor,
        page=page,
        limit=limit,
        unread_only=unread_only,
        notification_type=notification_type,
    )
    result["items"] = [NotificationResponse.model_validate(n) for n in result["items"]]
    return ok(NotificationListResponse.model_validate(result))


@router.get(
    "/stats",
    response_model=ApiResponse[NotificationStatisticsResponse],
    summary="Notification statistics",
)
async def get_notification_statistics(
    actor: PartyActor,
    service: NotificationServiceDep,
) -> ApiResponse[NotificationStatisticsResponse]:
    stats = await service.get_statistics(actor)
    return ok(NotificationStatisticsResponse.model_validate(stats))


@router.patch(
    "/read-all",
    response_model=ApiResponse[CountResponse],
    summary="Mark all as read",
)
async def mark_all_as_read(
    actor: PartyActor,
    service: NotificationServiceDep,
) -> ApiResponse[CountResponse]:
    count = await service.mark_all_as_read(actor)
    return ok(CountResponse(count=count), f"{count} notifications marked as read")


@router.post(
    "/bulk",
    response_model=ApiResponse[CountResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Send bulk notification",
    description="Create one notification per recipient. Admin only.",
)
async def send_bulk_notifications(
    request: BulkNotificationRequest,
    actor: AdminActor,
    service: NotificationServiceDep,
) -> ApiResponse[CountResponse]:
    count = await service.send_bulk(
        [PartyRef(r.kind, r.id) for r in request.recipients],
        request.type,
        request.title,
        request.message,
        sender=actor,
        priority=request.priority,
    )
    logger.info("Bulk notification sent via API", actor_id=str(actor.id), count=count)
    return ok(CountResponse(count=count), f"{count} notifications sent")


@router.patch(
    "/{notification_id}/read",
    response_model=ApiResponse[NotificationResponse],
    summary="Mark as read",
)
async def mark_as_read(
    notification_id: UUID,
    actor: PartyActor,
    service: NotificationServiceDep,
) -> ApiResponse[NotificationResponse]:
    notification = await service.mark_as_read(notification_id, actor)
    return ok(NotificationResponse.model_validate(notification))


@router.delete(
    "/{notification_id}",
    response_model=ApiResponse[None],
    summary="Delete notification",
)
async def delete_notification(
    notification_id: UUID,
    actor: PartyActor,
    service: NotificationServiceDep,
) -> ApiResponse[None]:
    await service.delete_notification(notification_id, actor)
    return ok(message="Notification deleted")
