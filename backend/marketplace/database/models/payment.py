"""
Payment processor bookkeeping.

Payment state itself lives on the order (``Order.payment_*``). This module
holds the ledger of processor webhook events already applied, which makes
redelivered events no-ops.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel


class ProcessedWebhookEvent(BaseModel):
    """
    Processor webhook event that has been handled.

    Attributes:
        event_id: Processor event identifier, unique
        event_type: Processor event type
        payment_intent_id: Intent the event referred to, if any
        order_id: Order affected, if any
        processed_at: When the event was applied
    """

    __tablename__ = "processed_webhook_events"

    event_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Processor event identifier",
    )

    event_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Processor event type",
    )

    payment_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Payment intent referenced by the event",
    )

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        comment="Order affected by the event",
    )

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the event was applied",
    )
