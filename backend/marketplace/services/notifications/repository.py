"""
Notification data access repository.

All queries are scoped to one recipient party. Inserts run inside a
SAVEPOINT so a failed notification write never poisons the surrounding
unit of work.
"""

import uuid
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.notification import Notification, NotificationType
from marketplace.database.models.party import PartyRef, party_matches

logger = get_logger(__name__)


class NotificationRepositoryError(UnexpectedError):
    """Raised when a notification query or write fails."""

    error_code = "NOTIFICATION_STORAGE_ERROR"


class NotificationRepository:
    """Repository for notification persistence."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, notification: Notification) -> Notification:
        """
        Persist a notification inside a SAVEPOINT.

        Args:
            notification: Transient notification

        Returns:
            Persisted notification

        Raises:
            NotificationRepositoryError: If the insert fails; the outer
                transaction is left intact
        """
        try:
            async with self.session.begin_nested():
                self.session.add(notification)
            return notification
        except SQLAlchemyError as e:
            logger.error(
                "Failed to persist notification",
                recipient=str(notification.recipient),
                notification_type=notification.type.value,
                error=str(e),
            )
            raise NotificationRepositoryError(
                "Failed to persist notification",
                error=str(e),
            ) from e

    async def create_many(self, notifications: Sequence[Notification]) -> int:
        """Persist several notifications in one SAVEPOINT."""
        try:
            async with self.session.begin_nested():
                self.session.add_all(list(notifications))
            return len(notifications)
        except SQLAlchemyError as e:
            logger.error("Failed to persist notifications", count=len(notifications), error=str(e))
            raise NotificationRepositoryError(
                "Failed to persist notifications",
                error=str(e),
            ) from e

    async def get_by_id(self, notification_id: uuid.UUID) -> Optional[Notification]:
        try:
            return await self.session.get(Notification, notification_id)
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to load notification",
                notification_id=str(notification_id),
                error=str(e),
            ) from e

    async def list_for_recipient(
        self,
        recipient: PartyRef,
        offset: int,
        limit: int,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
    ) -> tuple[list[Notification], int]:
        """
        List a recipient's notifications, newest first.

        Returns:
            Tuple of (page of notifications, total matching count)
        """
        criteria = [party_matches(Notification, "recipient", recipient)]
        if unread_only:
            criteria.append(Notification.is_read.is_(False))
        if notification_type is not None:
            criteria.append(Notification.type == notification_type)

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Notification).where(*criteria)
            )
            result = await self.session.scalars(
                select(Notification)
                .where(*criteria)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to list notifications",
                recipient=str(recipient),
                error=str(e),
            ) from e

    async def count_unread(self, recipient: PartyRef) -> int:
        try:
            count = await self.session.scalar(
                select(func.count())
                .select_from(Notification)
                .where(
                    party_matches(Notification, "recipient", recipient),
                    Notification.is_read.is_(False),
                )
            )
            return int(count or 0)
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to count unread notifications",
                recipient=str(recipient),
                error=str(e),
            ) from e

    async def mark_all_read(self, recipient: PartyRef, read_at: datetime) -> int:
        """
        Mark every unread notification of a recipient as read.

        Already-read rows keep their original read_at.

        Returns:
            Number of notifications changed
        """
        try:
            result = await self.session.execute(
                update(Notification)
                .where(
                    party_matches(Notification, "recipient", recipient),
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=read_at)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to mark notifications as read",
                recipient=str(recipient),
                error=str(e),
            ) from e

    async def save(self, notification: Notification) -> Notification:
        try:
            await self.session.flush()
            return notification
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to update notification",
                notification_id=str(notification.id),
                error=str(e),
            ) from e

    async def delete(self, notification: Notification) -> None:
        try:
            await self.session.delete(notification)
            await self.session.flush()
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to delete notification",
                notification_id=str(notification.id),
                error=str(e),
            ) from e

    async def stats_by_type(self, recipient: PartyRef) -> list[dict[str, Any]]:
        """Total and unread counts per notification type."""
        try:
            result = await self.session.execute(
                select(
                    Notification.type,
                    func.count().label("total"),
                    func.sum(case((Notification.is_read.is_(False), 1), else_=0)).label(
                        "unread"
                    ),
                )
                .where(party_matches(Notification, "recipient", recipient))
                .group_by(Notification.type)
            )
            return [
                {"type": row.type, "total": int(row.total), "unread": int(row.unread or 0)}
                for row in result
            ]
        except SQLAlchemyError as e:
            raise NotificationRepositoryError(
                "Failed to aggregate notifications",
                recipient=str(recipient),
                error=str(e),
            ) from e
