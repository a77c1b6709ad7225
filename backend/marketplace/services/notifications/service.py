"""
Notification service: dispatch from workflows and recipient-facing queries.

Workflows call ``notify`` after their primary mutation. It renders the text
from templates, persists the record, and logs rather than raises on failure,
so a notification problem never undoes the order, reservation or payment
change it accompanies. Recipient operations (listing, read state, deletion)
enforce that the caller is the addressee.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from marketplace.core.exceptions import AuthorizationError, MarketplaceError, NotFoundError
from marketplace.core.logging import get_logger
from marketplace.core.security import Actor
from marketplace.database.models.notification import (
    Notification,
    NotificationPriority,
    NotificationType,
)
from marketplace.database.models.party import PartyRef
from marketplace.services.notifications.repository import NotificationRepository
from marketplace.services.notifications.templates import (
    NotificationTemplateError,
    NotificationTemplates,
    get_notification_templates,
)

logger = get_logger(__name__)


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification does not exist."""


class NotificationAccessError(AuthorizationError):
    """Raised when the caller is not the notification's recipient."""


class NotificationService:
    """Creates notifications and serves a recipient's inbox."""

    def __init__(
        self,
        repository: NotificationRepository,
        templates: Optional[NotificationTemplates] = None,
    ):
        self.repository = repository
        self.templates = templates or get_notification_templates()

    async def create_notification(
        self,
        recipient: PartyRef,
        notification_type: NotificationType,
        title: str,
        message: str,
        sender: Optional[Actor] = None,
        related_order_id: Optional[uuid.UUID] = None,
        related_reservation_id: Optional[uuid.UUID] = None,
        related_product_id: Optional[uuid.UUID] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        data: Optional[dict[str, Any]] = None,
    ) -> Notification:
        """
        Persist one notification.

        Push and email delivery are not performed; the corresponding flags
        are left false for a delivery worker.

        Raises:
            NotificationRepositoryError: If the record cannot be stored
        """
        notification = Notification(
            id=uuid.uuid4(),
            type=notification_type,
            title=title,
            message=message,
            related_order_id=related_order_id,
            related_reservation_id=related_reservation_id,
            related_product_id=related_product_id,
            priority=priority,
            is_read=False,
            push_sent=False,
            email_sent=False,
            data=data,
        )
        notification.recipient = recipient
        if sender is not None:
            notification.sender_id = sender.id
            notification.sender_role = sender.role

        notification = await self.repository.create(notification)

        logger.info(
            "Notification created",
            notification_id=str(notification.id),
            recipient=str(recipient),
            notification_type=notification_type.value,
        )
        return notification

    async def notify(
        self,
        recipient: PartyRef,
        notification_type: NotificationType,
        sender: Optional[Actor] = None,
        related_order_id: Optional[uuid.UUID] = None,
        related_reservation_id: Optional[uuid.UUID] = None,
        related_product_id: Optional[uuid.UUID] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        data: Optional[dict[str, Any]] = None,
        **context: Any,
    ) -> Optional[Notification]:
        """
        Render and persist a workflow notification, never raising.

        Args:
            recipient: Addressee
            notification_type: Type, selects the templates
            sender: Actor that caused the notification
            related_*: Entity references
            priority: Display priority
            data: Structured payload stored with the notification
            **context: Template variables

        Returns:
            The notification, or None if it could not be created
        """
        try:
            title, message = self.templates.render(notification_type, **context)
            return await self.create_notification(
                recipient=recipient,
                notification_type=notification_type,
                title=title,
                message=message,
                sender=sender,
                related_order_id=related_order_id,
                related_reservation_id=related_reservation_id,
                related_product_id=related_product_id,
                priority=priority,
                data=data,
            )
        except (MarketplaceError, NotificationTemplateError) as e:
            logger.error(
                "Notification dispatch failed",
                recipient=str(recipient),
                notification_type=notification_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def send_bulk(
        self,
        recipients: Sequence[PartyRef],
        notification_type: NotificationType,
        title: str,
        message: str,
        sender: Optional[Actor] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> int:
        """
        Create the same notification for several recipients.

        Returns:
            Number of notifications created
        """
        notifications = []
        for recipient in dict.fromkeys(recipients):
            notification = Notification(
                id=uuid.uuid4(),
                type=notification_type,
                title=title,
                message=message,
                priority=priority,
                is_read=False,
                push_sent=False,
                email_sent=False,
            )
            notification.recipient = recipient
            if sender is not None:
                notification.sender_id = sender.id
                notification.sender_role = sender.role
            notifications.append(notification)

        created = await self.repository.create_many(notifications)
        logger.info(
            "Bulk notifications created",
            count=created,
            notification_type=notification_type.value,
        )
        return created

    async def list_notifications(
        self,
        actor: Actor,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
    ) -> dict[str, Any]:
        """
        List the actor's notifications, newest first.

        Returns:
            Dictionary with items, total, unread_count, page and limit
        """
        recipient = self._recipient(actor)
        items, total = await self.repository.list_for_recipient(
            recipient,
            offset=(page - 1) * limit,
            limit=limit,
            unread_only=unread_only,
            notification_type=notification_type,
        )
        unread_count = await self.repository.count_unread(recipient)
        return {
            "items": items,
            "total": total,
            "unread_count": unread_count,
            "page": page,
            "limit": limit,
        }

    async def mark_as_read(self, notification_id: uuid.UUID, actor: Actor) -> Notification:
        """
        Mark one notification as read.

        Idempotent: marking a read notification again keeps its read_at.

        Raises:
            NotificationNotFoundError: If it does not exist
            NotificationAccessError: If the actor is not the recipient
        """
        notification = await self._get_owned(notification_id, actor)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await self.repository.save(notification)
            logger.info("Notification marked as read", notification_id=str(notification_id))
        return notification

    async def mark_all_as_read(self, actor: Actor) -> int:
        """
        Mark every unread notification of the actor as read.

        Returns:
            Number of notifications changed; zero on a repeated call
        """
        recipient = self._recipient(actor)
        changed = await self.repository.mark_all_read(
            recipient, datetime.now(timezone.utc)
        )
        logger.info("Notifications marked as read", recipient=str(recipient), count=changed)
        return changed

    async def delete_notification(self, notification_id: uuid.UUID, actor: Actor) -> None:
        """
        Delete a notification owned by the actor.

        Raises:
            NotificationNotFoundError: If it does not exist
            NotificationAccessError: If the actor is not the recipient
        """
        notification = await self._get_owned(notification_id, actor)
        await self.repository.delete(notification)
        logger.info("Notification deleted", notification_id=str(notification_id))

    async def get_statistics(self, actor: Actor) -> dict[str, Any]:
        """Totals and unread counts, overall and per type."""
        by_type = await self.repository.stats_by_type(self._recipient(actor))
        return {
            "total": sum(row["total"] for row in by_type),
            "unread": sum(row["unread"] for row in by_type),
            "by_type": by_type,
        }

    async def _get_owned(self, notification_id: uuid.UUID, actor: Actor) -> Notification:
        notification = await self.repository.get_by_id(notification_id)
        if notification is None:
            raise NotificationNotFoundError(
                "Notification not found",
                notification_id=str(notification_id),
            )
        if not actor.is_party(notification.recipient):
            logger.warning(
                "Notification access denied",
                notification_id=str(notification_id),
                actor_id=str(actor.id),
            )
            raise NotificationAccessError(
                "Not authorized to access this notification",
                notification_id=str(notification_id),
            )
        return notification

    @staticmethod
    def _recipient(actor: Actor) -> PartyRef:
        party = actor.party
        if party is None:
            raise NotificationAccessError("Only buyers and suppliers have notifications")
        return party
