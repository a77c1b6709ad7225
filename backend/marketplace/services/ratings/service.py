"""
Rating service for party-to-party evaluations.

Ratings may reference an order, in which case the rater must be a party to
it and the ratee its counterparty; such ratings are marked verified once the
order is delivered. Summaries aggregate the overall score distribution and
per-category sub-score averages.
"""

import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from marketplace.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from marketplace.core.logging import get_logger
from marketplace.core.security import Actor
from marketplace.database.models.notification import NotificationType
from marketplace.database.models.order import OrderStatus
from marketplace.database.models.party import PartyRef
from marketplace.database.models.rating import RATING_CATEGORIES, Rating
from marketplace.services.accounts.repository import AccountRepository
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.ratings.repository import DuplicateRatingError, RatingRepository

logger = get_logger(__name__)

MAX_COMMENT_LENGTH = 500


class RatingNotFoundError(NotFoundError):
    """Raised when a rating does not exist."""


class RatingAccessError(AuthorizationError):
    """Raised when the caller may not act on the rating."""


class RateeNotFoundError(NotFoundError):
    """Raised when the rated party does not exist."""


def _round_average(total: Decimal, count: int) -> float:
    return float((total / count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class RatingService:
    """Creates ratings and serves per-party rating summaries."""

    def __init__(
        self,
        repository: RatingRepository,
        account_repository: AccountRepository,
        order_repository: OrderRepository,
        notification_service: NotificationService,
    ):
        self.repository = repository
        self.account_repository = account_repository
        self.order_repository = order_repository
        self.notification_service = notification_service

    async def create_rating(
        self,
        actor: Actor,
        ratee: PartyRef,
        score: int,
        comment: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
        categories: Optional[dict[str, int]] = None,
    ) -> Rating:
        """
        Rate another party.

        Args:
            actor: Rating party
            ratee: Rated party
            score: Overall score, 1 to 5
            comment: Optional comment, up to 500 characters
            order_id: Optional order the rating refers to
            categories: Optional sub-scores, 1 to 5, keyed by category

        Returns:
            Created rating

        Raises:
            RatingAccessError: If the actor is not a marketplace party
            ValidationError: On a self-rating, bad scores or an order the
                pair did not trade on
            RateeNotFoundError: If the ratee does not exist
            NotFoundError: If the order does not exist
            DuplicateRatingError: If this rating was already given
        """
        rater = actor.party
        if rater is None:
            raise RatingAccessError("Only buyers and suppliers can rate")
        if rater == ratee:
            raise ValidationError("You cannot rate yourself")
        self._validate_scores(score, comment, categories)

        if await self.account_repository.get_party(ratee) is None:
            raise RateeNotFoundError(
                f"{ratee.kind.display_name} not found",
                ratee=str(ratee),
            )

        is_verified = False
        if order_id is not None:
            order = await self.order_repository.get_by_id(order_id)
            if order is None:
                raise NotFoundError("Order not found", order_id=str(order_id))
            if not (actor.is_party(order.buyer) or actor.is_party(order.supplier)):
                raise ValidationError(
                    "You can only rate orders you took part in",
                    order_id=str(order_id),
                )
            if order.counterparty_of(rater) != ratee:
                raise ValidationError(
                    "The rated party is not the counterparty of this order",
                    order_id=str(order_id),
                )
            is_verified = order.status == OrderStatus.DELIVERED

        if await self.repository.find_existing(rater, ratee, order_id) is not None:
            raise DuplicateRatingError(
                "You have already submitted this rating",
                ratee=str(ratee),
                order_id=str(order_id) if order_id else None,
            )

        rating = Rating(
            id=uuid.uuid4(),
            score=score,
            comment=comment,
            order_id=order_id,
            categories=categories or None,
            is_verified=is_verified,
            helpful_votes=0,
        )
        rating.rater = rater
        rating.ratee = ratee
        rating = await self.repository.add(rating)

        await self.notification_service.notify(
            recipient=ratee,
            notification_type=NotificationType.RATING_RECEIVED,
            sender=actor,
            related_order_id=order_id,
            data={"rating_id": str(rating.id), "score": score},
            score=score,
            comment=comment,
        )

        logger.info(
            "Rating created",
            rating_id=str(rating.id),
            rater=str(rater),
            ratee=str(ratee),
            score=score,
        )
        return rating

    async def list_ratings_for(
        self,
        ratee: PartyRef,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        items, total = await self.repository.list_for_ratee(
            ratee, offset=(page - 1) * limit, limit=limit
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def get_rating_summary(self, ratee: PartyRef) -> dict[str, Any]:
        """
        Aggregate a party's ratings.

        Returns:
            Dictionary with average_score (one decimal, 0.0 without ratings),
            total_ratings, a 1-5 distribution and category_averages
        """
        counts = await self.repository.score_distribution(ratee)
        distribution = {score: counts.get(score, 0) for score in range(1, 6)}
        total = sum(distribution.values())
        weighted = sum(Decimal(score * count) for score, count in distribution.items())

        averages = await self.repository.category_averages(ratee)
        return {
            "ratee": ratee,
            "average_score": _round_average(weighted, total) if total else 0.0,
            "total_ratings": total,
            "distribution": distribution,
            "category_averages": {
                category: _round_average(Decimal(str(value)), 1)
                for category, value in averages.items()
                if value is not None
            },
        }

    async def respond_to_rating(
        self,
        rating_id: uuid.UUID,
        actor: Actor,
        message: str,
    ) -> Rating:
        """
        Publish the ratee's reply to a rating. A rating takes one reply.

        Raises:
            RatingNotFoundError: If the rating does not exist
            RatingAccessError: If the actor is not the ratee
            ValidationError: If the message is empty or a reply exists
        """
        rating = await self.repository.get_by_id(rating_id)
        if rating is None:
            raise RatingNotFoundError("Rating not found", rating_id=str(rating_id))
        if not actor.is_party(rating.ratee):
            raise RatingAccessError(
                "Only the rated party can respond",
                rating_id=str(rating_id),
            )
        if not message or not message.strip():
            raise ValidationError("Response message cannot be empty")
        if rating.response_message:
            raise ValidationError(
                "This rating already has a response",
                rating_id=str(rating_id),
            )

        rating.response_message = message.strip()
        rating.responded_at = datetime.now(timezone.utc)
        await self.repository.save(rating)
        logger.info("Rating response added", rating_id=str(rating_id))
        return rating

    @staticmethod
    def _validate_scores(
        score: int,
        comment: Optional[str],
        categories: Optional[dict[str, int]],
    ) -> None:
        if not 1 <= score <= 5:
            raise ValidationError("Score must be between 1 and 5", score=score)
        if comment and len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters"
            )
        for category, value in (categories or {}).items():
            if category not in RATING_CATEGORIES:
                raise ValidationError(
                    f"Unknown rating category: {category}",
                    allowed=list(RATING_CATEGORIES),
                )
            if not 1 <= value <= 5:
                raise ValidationError(
                    f"Category score for {category} must be between 1 and 5",
                    category=category,
                )
