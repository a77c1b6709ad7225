"""
Webhook event ledger repository.

Recording an event inserts its id inside a SAVEPOINT. A unique-key violation
means the event was applied before, and the caller treats it as a duplicate.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.payment import ProcessedWebhookEvent

logger = get_logger(__name__)


class PaymentRepositoryError(UnexpectedError):
    """Raised when the webhook ledger cannot be read or written."""

    error_code = "PAYMENT_STORAGE_ERROR"


class PaymentRepository:
    """Repository for processed webhook events."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_event(self, event_id: str) -> Optional[ProcessedWebhookEvent]:
        try:
            return await self.session.scalar(
                select(ProcessedWebhookEvent).where(
                    ProcessedWebhookEvent.event_id == event_id
                )
            )
        except SQLAlchemyError as e:
            raise PaymentRepositoryError(
                "Failed to load webhook event",
                event_id=event_id,
                error=str(e),
            ) from e

    async def record_event(
        self,
        event_id: str,
        event_type: str,
        payment_intent_id: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Record a webhook event as processed.

        Returns:
            True if recorded, False if the event id was already present
        """
        if await self.get_event(event_id) is not None:
            return False

        record = ProcessedWebhookEvent(
            id=uuid.uuid4(),
            event_id=event_id,
            event_type=event_type,
            payment_intent_id=payment_intent_id,
            order_id=order_id,
            processed_at=datetime.now(timezone.utc),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(record)
            return True
        except IntegrityError:
            logger.info("Webhook event recorded concurrently", event_id=event_id)
            return False
        except SQLAlchemyError as e:
            raise PaymentRepositoryError(
                "Failed to record webhook event",
                event_id=event_id,
                error=str(e),
            ) from e
