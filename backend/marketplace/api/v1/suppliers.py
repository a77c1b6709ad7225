"""
Supplier account API endpoints.

Listing, search and lookup by id are public so buyers can find suppliers
to order from, reserve from or rate.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from marketplace.api.deps import AccountServiceDep, SupplierActor
from marketplace.api.rate_limit import limiter
from marketplace.core.config import get_settings
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyKind
from marketplace.schemas.accounts import (
    LoginRequest,
    PublicSupplierResponse,
    SupplierRegisterRequest,
    SupplierResponse,
    TokenResponse,
)
from marketplace.schemas.common import ApiResponse, Page, ok

logger = get_logger(__name__)

router = APIRouter(prefix="/suppliers", tags=["suppliers"])


@router.post(
    "/register",
    response_model=ApiResponse[SupplierResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register supplier",
    description="Create a supplier account. Fails with 400 if the email is taken.",
)
async def register_supplier(
    request: SupplierRegisterRequest,
    service: AccountServiceDep,
) -> ApiResponse[SupplierResponse]:
    supplier = await service.register_supplier(**request.model_dump())
    return ok(SupplierResponse.model_validate(supplier), "Supplier registered successfully")


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    summary="Supplier login",
)
@limiter.limit(get_settings().login_rate_limit)
async def login_supplier(
    request: Request,
    credentials: LoginRequest,
    service: AccountServiceDep,
) -> ApiResponse[TokenResponse]:
    result = await service.login(PartyKind.SUPPLIER, credentials.email, credentials.password)
    token = TokenResponse(
        access_token=result["access_token"],
        token_type=result["token_type"],
        expires_in=result["expires_in"],
        role=PartyKind.SUPPLIER,
        account_id=result["account"].id,
    )
    return ok(token, "Login successful")


@router.get(
    "/me",
    response_model=ApiResponse[SupplierResponse],
    summary="Current supplier profile",
)
async def get_supplier_profile(
    actor: SupplierActor,
    service: AccountServiceDep,
) -> ApiResponse[SupplierResponse]:
    supplier = await service.get_profile(actor)
    return ok(SupplierResponse.model_validate(supplier))


@router.get(
    "/",
    response_model=ApiResponse[Page[PublicSupplierResponse]],
    summary="List suppliers",
    description="Active suppliers, newest first. ``search`` matches name, business name or email.",
)
async def list_suppliers(
    service: AccountServiceDep,
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse[Page[PublicSupplierResponse]]:
    result = await service.list_suppliers(page=page, limit=limit, search=search)
    return ok(
        Page.build(
            [PublicSupplierResponse.model_validate(s) for s in result["items"]],
            total=result["total"],
            page=page,
            limit=limit,
        )
    )


@router.get(
    "/{supplier_id}",
    response_model=ApiResponse[PublicSupplierResponse],
    summary="Get supplier",
)
async def get_supplier(
    supplier_id: UUID,
    service: AccountServiceDep,
) -> ApiResponse[PublicSupplierResponse]:
    supplier = await service.get_public_profile(PartyKind.SUPPLIER, supplier_id)
    return ok(PublicSupplierResponse.model_validate(supplier))
