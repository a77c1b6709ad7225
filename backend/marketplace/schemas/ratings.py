"""
Rating schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from marketplace.database.models.party import PartyKind
from marketplace.database.models.rating import RATING_CATEGORIES


class RatingCreateRequest(BaseModel):
    """Rating of another party."""

    ratee_kind: PartyKind
    ratee_id: UUID
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    order_id: Optional[UUID] = None
    categories: Optional[dict[str, int]] = None

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: Optional[dict[str, int]]) -> Optional[dict[str, int]]:
        for category, score in (v or {}).items():
            if category not in RATING_CATEGORIES:
                raise ValueError(
                    f"Unknown category {category}; expected one of {', '.join(RATING_CATEGORIES)}"
                )
            if not 1 <= score <= 5:
                raise ValueError(f"Category score for {category} must be between 1 and 5")
        return v


class RatingReplyRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=1000)


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    rater_kind: PartyKind
    rater_id: UUID
    ratee_kind: PartyKind
    ratee_id: UUID
    score: int
    comment: Optional[str] = None
    order_id: Optional[UUID] = None
    categories: Optional[dict[str, int]] = None
    is_verified: bool
    response_message: Optional[str] = None
    responded_at: Optional[datetime] = None
    helpful_votes: int = 0
    created_at: Optional[datetime] = None


class RatingSummaryResponse(BaseModel):
    ratee_kind: PartyKind
    ratee_id: UUID
    average_score: float
    total_ratings: int
    distribution: dict[int, int]
    category_averages: dict[str, float]
