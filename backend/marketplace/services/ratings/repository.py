"""
Rating data access repository.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ConflictError, UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyRef, party_matches
from marketplace.database.models.rating import RATING_CATEGORIES, Rating

logger = get_logger(__name__)


class RatingRepositoryError(UnexpectedError):
    """Raised when a rating query or write fails."""

    error_code = "RATING_STORAGE_ERROR"


class DuplicateRatingError(ConflictError):
    """Raised when the rater already rated this order or party."""

    error_code = "DUPLICATE_RATING"


class RatingRepository:
    """Repository for ratings and their aggregates."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, rating: Rating) -> Rating:
        try:
            self.session.add(rating)
            await self.session.flush()
            return rating
        except IntegrityError as e:
            raise DuplicateRatingError(
                "You have already submitted this rating",
                rater=str(rating.rater),
                order_id=str(rating.order_id) if rating.order_id else None,
            ) from e
        except SQLAlchemyError as e:
            raise RatingRepositoryError("Failed to create rating", error=str(e)) from e

    async def save(self, rating: Rating) -> Rating:
        try:
            await self.session.flush()
            return rating
        except SQLAlchemyError as e:
            raise RatingRepositoryError(
                "Failed to update rating",
                rating_id=str(rating.id),
                error=str(e),
            ) from e

    async def get_by_id(self, rating_id: uuid.UUID) -> Optional[Rating]:
        try:
            return await self.session.get(Rating, rating_id)
        except SQLAlchemyError as e:
            raise RatingRepositoryError(
                "Failed to load rating",
                rating_id=str(rating_id),
                error=str(e),
            ) from e

    async def find_existing(
        self,
        rater: PartyRef,
        ratee: PartyRef,
        order_id: Optional[uuid.UUID],
    ) -> Optional[Rating]:
        """
        Rating that would collide with a new one.

        With an order: the rater's rating of that order. Without: the
        rater's order-less rating of the ratee.
        """
        criteria = [party_matches(Rating, "rater", rater)]
        if order_id is not None:
            criteria.append(Rating.order_id == order_id)
        else:
            criteria.extend([party_matches(Rating, "ratee", ratee), Rating.order_id.is_(None)])
        try:
            return await self.session.scalar(select(Rating).where(*criteria).limit(1))
        except SQLAlchemyError as e:
            raise RatingRepositoryError("Failed to check rating", error=str(e)) from e

    async def list_for_ratee(
        self, ratee: PartyRef, offset: int, limit: int
    ) -> tuple[list[Rating], int]:
        criteria = [party_matches(Rating, "ratee", ratee)]
        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Rating).where(*criteria)
            )
            result = await self.session.scalars(
                select(Rating)
                .where(*criteria)
                .order_by(Rating.created_at.desc(), Rating.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise RatingRepositoryError(
                "Failed to list ratings",
                ratee=str(ratee),
                error=str(e),
            ) from e

    async def score_distribution(self, ratee: PartyRef) -> dict[int, int]:
        """Number of ratings per score."""
        try:
            result = await self.session.execute(
                select(Rating.score, func.count().label("count"))
                .where(party_matches(Rating, "ratee", ratee))
                .group_by(Rating.score)
            )
            return {int(row.score): int(row.count) for row in result}
        except SQLAlchemyError as e:
            raise RatingRepositoryError(
                "Failed to aggregate ratings",
                ratee=str(ratee),
                error=str(e),
            ) from e

    async def category_averages(self, ratee: PartyRef) -> dict[str, Optional[float]]:
        """Average sub-score per category; None where no rating scored it."""
        columns = [
            func.avg(Rating.categories[category].as_float()).label(category)
            for category in RATING_CATEGORIES
        ]
        try:
            row = (
                await self.session.execute(
                    select(*columns).where(party_matches(Rating, "ratee", ratee))
                )
            ).one()
            return {
                category: float(value) if value is not None else None
                for category, value in zip(RATING_CATEGORIES, row)
            }
        except SQLAlchemyError as e:
            raise RatingRepositoryError(
                "Failed to aggregate rating categories",
                ratee=str(ratee),
                error=str(e),
            ) from e
