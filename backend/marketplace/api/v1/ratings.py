"""
Rating API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import PartyActor, RatingServiceDep
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyKind, PartyRef
from marketplace.schemas.common import ApiResponse, Page, ok
from marketplace.schemas.ratings import (
    RatingCreateRequest,
    RatingReplyRequest,
    RatingResponse,
    RatingSummaryResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post(
    "/",
    response_model=ApiResponse[RatingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Rate a party",
    description="Rate a buyer or supplier, optionally for an order traded between you.",
)
async def create_rating(
    request: RatingCreateRequest,
    actor: PartyActor,
    service: RatingServiceDep,
) -> ApiResponse[RatingResponse]:
    rating = await service.create_rating(
        actor,
        PartyRef(request.ratee_kind, request.ratee_id),
        request.score,
        comment=request.comment,
        order_id=request.order_id,
        categories=request.categories,
    )
    return ok(RatingResponse.model_validate(rating), "Rating submitted")


@router.get(
    "/{ratee_kind}/{ratee_id}",
    response_model=ApiResponse[Page[RatingResponse]],
    summary="List ratings of a party",
)
async def list_ratings(
    ratee_kind: PartyKind,
    ratee_id: UUID,
    service: RatingServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[Page[RatingResponse]]:
    result = await service.list_ratings_for(
        PartyRef(ratee_kind, ratee_id), page=page, limit=limit
    )
    return ok(
        Page.build(
            [RatingResponse.model_validate(r) for r in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/{ratee_kind}/{ratee_id}/summary",
    response_model=ApiResponse[RatingSummaryResponse],
    summary="Rating summary",
    description="Average score, count, score distribution and category averages.",
)
async def get_rating_summary(
    ratee_kind: PartyKind,
    ratee_id: UUID,
    service: RatingServiceDep,
) -> ApiResponse[RatingSummaryResponse]:
    summary = await service.get_rating_summary(PartyRef(ratee_kind, ratee_id))
    ratee = summary.pop("ratee")
    return ok(
        RatingSummaryResponse(ratee_kind=ratee.kind, ratee_id=ratee.id, **summary)
    )


@router.post(
    "/{rating_id}/response",
    response_model=ApiResponse[RatingResponse],
    summary="Respond to rating",
    description="Publish the rated party's reply. A rating takes one reply.",
)
async def respond_to_rating(
    rating_id: UUID,
    request: RatingReplyRequest,
    actor: PartyActor,
    service: RatingServiceDep,
) -> ApiResponse[RatingResponse]:
    rating = await service.respond_to_rating(rating_id, actor, request.message)
    logger.info("Rating response published", rating_id=str(rating_id))
    return ok(RatingResponse.model_validate(rating), "Response added")
