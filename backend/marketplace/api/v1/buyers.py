"""
Buyer account API endpoints.

Registration, login and shop lookup by id are public; login is rate
limited per client address. Profile and bank details endpoints require a
buyer token.
"""

from uuid import UUID

from fastapi import APIRouter, Request, status

from marketplace.api.deps import AccountServiceDep, BuyerActor
from marketplace.api.rate_limit import limiter
from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyKind
from marketplace.schemas.accounts import (
    BankDetailsRequest,
    BuyerRegisterRequest,
    BuyerResponse,
    LoginRequest,
    PublicBuyerResponse,
    TokenResponse,
)
from marketplace.schemas.common import ApiResponse, ok

logger = get_logger(__name__)

router = APIRouter(prefix="/buyers", tags=["buyers"])


@router.post(
    "/register",
    response_model=ApiResponse[BuyerResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register buyer",
    description="Create a buyer shop account. Fails with 400 if the email is taken.",
)
async def register_buyer(
    request: BuyerRegisterRequest,
    service: AccountServiceDep,
) -> ApiResponse[BuyerResponse]:
    buyer = await service.register_buyer(**request.model_dump())
    return ok(BuyerResponse.model_validate(buyer), "Buyer registered successfully")


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    summary="Buyer login",
    description="Exchange buyer credentials for a bearer token.",
)
@limiter.limit(get_settings().login_rate_limit)
async def login_buyer(
    request: Request,
    credentials: LoginRequest,
    service: AccountServiceDep,
) -> ApiResponse[TokenResponse]:
    """
    Authenticate a buyer.

    Raises:
        InvalidCredentialsError: 401 on a wrong email or password
    """
    result = await service.login(PartyKind.BUYER, credentials.email, credentials.password)
    token = TokenResponse(
        access_token=result["access_token"],
        token_type=result["token_type"],
        expires_in=result["expires_in"],
        role=PartyKind.BUYER,
        account_id=result["account"].id,
    )
    return ok(token, "Login successful")


@router.get(
    "/me",
    response_model=ApiResponse[BuyerResponse],
    summary="Current buyer profile",
)
async def get_buyer_profile(
    actor: BuyerActor,
    service: AccountServiceDep,
) -> ApiResponse[BuyerResponse]:
    buyer = await service.get_profile(actor)
    return ok(BuyerResponse.model_validate(buyer))


@router.put(
    "/me/bank-details",
    response_model=ApiResponse[BuyerResponse],
    summary="Update bank details",
    description="Replace the buyer's payout bank details.",
)
async def update_bank_details(
    request: BankDetailsRequest,
    actor: BuyerActor,
    service: AccountServiceDep,
) -> ApiResponse[BuyerResponse]:
    buyer = await service.update_buyer_bank_details(actor, **request.model_dump())
    logger.info("Bank details updated via API", buyer_id=str(actor.id))
    return ok(BuyerResponse.model_validate(buyer), "Bank details updated")


@router.get(
    "/{buyer_id}",
    response_model=ApiResponse[PublicBuyerResponse],
    summary="Get buyer shop",
    description="Public view of an active buyer shop, e.g. to address a reservation.",
)
async def get_buyer(
    buyer_id: UUID,
    service: AccountServiceDep,
) -> ApiResponse[PublicBuyerResponse]:
    buyer = await service.get_public_profile(PartyKind.BUYER, buyer_id)
    return ok(PublicBuyerResponse.model_validate(buyer))
