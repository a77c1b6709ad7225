"""
Reservation API endpoints.

Anyone may request a reservation from a shop; a bearer token, when sent,
links the reservation to the requesting party; requesters without an account
follow up through the public lookup by contact number. The addressed shop accepts
or rejects pending requests, the requester may cancel them, and either side
converts an accepted reservation into an order.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from marketplace.api.deps import (
    AdminActor,
    CurrentActor,
    OptionalActor,
    PartyActor,
    ReservationServiceDep,
)
from marketplace.core.logging import get_logger
from marketplace.database.models.reservation import ReservationStatus
from marketplace.schemas.common import ApiResponse, Page, ok
from marketplace.schemas.orders import OrderResponse
from marketplace.schemas.reservations import (
    ExpirySweepResponse,
    ReservationAcceptRequest,
    ReservationCreateRequest,
    ReservationRejectRequest,
    ReservationResponse,
    ReservationStatisticsResponse,
    ReservationTrackingResponse,
    RoleView,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post(
    "/",
    response_model=ApiResponse[ReservationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create reservation",
    description="Request a reservation from a shop. Advance payment requires bank details.",
)
async def create_reservation(
    request: ReservationCreateRequest,
    actor: OptionalActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationResponse]:
    reservation = await service.create_reservation(actor=actor, **request.model_dump())
    return ok(
        ReservationResponse.model_validate(reservation),
        "Reservation created successfully",
    )


@router.get(
    "/",
    response_model=ApiResponse[Page[ReservationResponse]],
    summary="List reservations",
    description="Reservations received as a shop, or made as a requester.",
)
async def list_reservations(
    actor: PartyActor,
    service: ReservationServiceDep,
    role_view: RoleView = Query("shop"),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[Page[ReservationResponse]]:
    result = await service.list_reservations(
        actor,
        role_view=role_view,
        status=reservation_status,
        page=page,
        limit=limit,
    )
    return ok(
        Page.build(
            [ReservationResponse.model_validate(r) for r in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/stats",
    response_model=ApiResponse[ReservationStatisticsResponse],
    summary="Reservation statistics",
    description="Counts of reservations received, per status.",
)
async def get_reservation_statistics(
    actor: PartyActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationStatisticsResponse]:
    stats = await service.get_statistics(actor)
    return ok(ReservationStatisticsResponse.model_validate(stats))


@router.post(
    "/expire",
    response_model=ApiResponse[ExpirySweepResponse],
    summary="Expire stale reservations",
    description="Run the pending-reservation expiry sweep now.",
)
async def expire_reservations(
    actor: AdminActor,
    service: ReservationServiceDep,
) -> ApiResponse[ExpirySweepResponse]:
    expired = await service.expire_old_reservations()
    logger.info("Expiry sweep triggered", actor_id=str(actor.id), expired=expired)
    return ok(ExpirySweepResponse(expired=expired), f"{expired} reservations expired")


@router.get(
    "/public/{contact_number}",
    response_model=ApiResponse[Page[ReservationTrackingResponse]],
    summary="Track reservations by contact number",
    description="Public lookup for requesters who reserved without an account.",
)
async def track_reservations(
    contact_number: str,
    service: ReservationServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[Page[ReservationTrackingResponse]]:
    result = await service.track_reservations(contact_number, page=page, limit=limit)
    return ok(
        Page.build(
            [ReservationTrackingResponse.model_validate(r) for r in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/{reservation_id}",
    response_model=ApiResponse[ReservationResponse],
    summary="Get reservation",
)
async def get_reservation(
    reservation_id: UUID,
    actor: CurrentActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationResponse]:
    reservation = await service.get_reservation(reservation_id, actor)
    return ok(ReservationResponse.model_validate(reservation))


@router.post(
    "/{reservation_id}/accept",
    response_model=ApiResponse[ReservationResponse],
    summary="Accept reservation",
    description="Accept a pending reservation, optionally with a counter-offer.",
)
async def accept_reservation(
    reservation_id: UUID,
    request: ReservationAcceptRequest,
    actor: PartyActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationResponse]:
    reservation = await service.accept_reservation(
        reservation_id, actor, **request.model_dump()
    )
    return ok(ReservationResponse.model_validate(reservation), "Reservation accepted")


@router.post(
    "/{reservation_id}/reject",
    response_model=ApiResponse[ReservationResponse],
    summary="Reject reservation",
)
async def reject_reservation(
    reservation_id: UUID,
    request: ReservationRejectRequest,
    actor: PartyActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationResponse]:
    reservation = await service.reject_reservation(
        reservation_id, actor, response_message=request.response_message
    )
    return ok(ReservationResponse.model_validate(reservation), "Reservation rejected")


@router.post(
    "/{reservation_id}/cancel",
    response_model=ApiResponse[ReservationResponse],
    summary="Cancel reservation",
    description="Withdraw a pending reservation. Requester only.",
)
async def cancel_reservation(
    reservation_id: UUID,
    actor: PartyActor,
    service: ReservationServiceDep,
) -> ApiResponse[ReservationResponse]:
    reservation = await service.cancel_reservation(reservation_id, actor)
    return ok(ReservationResponse.model_validate(reservation), "Reservation cancelled")


@router.post(
    "/{reservation_id}/convert",
    response_model=ApiResponse[OrderResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Convert reservation to order",
    description="Create an order from an accepted reservation at the agreed terms.",
)
async def convert_reservation(
    reservation_id: UUID,
    actor: PartyActor,
    service: ReservationServiceDep,
) -> ApiResponse[OrderResponse]:
    """
    Convert an accepted reservation.

    Raises:
        InvalidTransitionError: 400 if the reservation is not accepted or
            was already converted
    """
    order = await service.convert_to_order(reservation_id, actor)
    return ok(OrderResponse.model_validate(order), "Reservation converted to order")
