"""
Rating model for party-to-party evaluations.

A rating is written by one party about another, optionally in the context of
an order. A rater may rate a given order once, and may rate a given party
once outside of any order. Self-ratings are rejected by the service and by a
CHECK constraint.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.database.base import BaseModel, enum_type
from marketplace.database.models.party import PartyKind, party_property

RATING_CATEGORIES = ("quality", "delivery", "communication", "packaging", "value")


class Rating(BaseModel):
    """
    Rating given by a rater to a ratee.

    Attributes:
        rater_kind / rater_id: Party giving the rating
        ratee_kind / ratee_id: Party being rated
        score: Overall score, 1 to 5
        comment: Optional comment, up to 500 characters
        order_id: Optional order the rating refers to
        categories: Optional sub-scores keyed by RATING_CATEGORIES
        is_verified: Whether the rating is tied to a delivered order
        response_message / responded_at: Ratee's public reply
        helpful_votes: Count of helpful votes
    """

    __tablename__ = "ratings"

    rater_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "rating_rater_kind"),
        nullable=False,
        comment="Kind of the rating party",
    )

    rater_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the rating party",
    )

    ratee_kind: Mapped[PartyKind] = mapped_column(
        enum_type(PartyKind, "rating_ratee_kind"),
        nullable=False,
        comment="Kind of the rated party",
    )

    ratee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        comment="Identifier of the rated party",
    )

    score: Mapped[int] = mapped_column(
        SmallInteger,
        nullable=False,
        comment="Overall score 1-5",
    )

    comment: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Free-text comment",
    )

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        comment="Order the rating refers to",
    )

    categories: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        comment="Category sub-scores",
    )

    is_verified: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
        comment="Tied to a delivered order",
    )

    response_message: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True,
        comment="Ratee's reply",
    )

    responded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the ratee replied",
    )

    helpful_votes: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Helpful vote count",
    )

    rater = party_property("rater")
    ratee = party_property("ratee")

    __table_args__ = (
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_ratings_score_range"),
        CheckConstraint(
            "NOT (rater_kind = ratee_kind AND rater_id = ratee_id)",
            name="ck_ratings_no_self_rating",
        ),
        Index(
            "uq_ratings_rater_order",
            "rater_kind",
            "rater_id",
            "order_id",
            unique=True,
            postgresql_where=text("order_id IS NOT NULL"),
        ),
        Index(
            "uq_ratings_rater_ratee_without_order",
            "rater_kind",
            "rater_id",
            "ratee_kind",
            "ratee_id",
            unique=True,
            postgresql_where=text("order_id IS NULL"),
        ),
        Index("ix_ratings_ratee", "ratee_kind", "ratee_id"),
        {"comment": "Party-to-party ratings"},
    )
