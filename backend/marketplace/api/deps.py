"""
FastAPI dependencies for authentication, authorization and service wiring.

Bearer tokens are decoded into an Actor without a database round trip; role
checks are made against the token's role claim. Services are assembled per
request around the request's database session.
"""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import AuthenticationError, AuthorizationError
from marketplace.core.logging import get_logger, set_actor
from marketplace.core.security import Actor, decode_access_token
from marketplace.database.connection import get_db
from marketplace.database.models.party import UserRole
from marketplace.services.accounts.repository import AccountRepository
from marketplace.services.accounts.service import AccountService
from marketplace.services.notifications.repository import NotificationRepository
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.repository import OrderRepository
from marketplace.services.orders.service import OrderService
from marketplace.services.payments.processors import PaymentProcessor, get_payment_processor
from marketplace.services.payments.repository import PaymentRepository
from marketplace.services.payments.service import PaymentService
from marketplace.services.products.repository import ProductRepository
from marketplace.services.products.service import ProductService
from marketplace.services.ratings.repository import RatingRepository
from marketplace.services.ratings.service import RatingService
from marketplace.services.reservations.repository import ReservationRepository
from marketplace.services.reservations.service import ReservationService

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


async def get_optional_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> Optional[Actor]:
    """
    Resolve the caller from a bearer token, if one is sent.

    Raises:
        AuthenticationError: If a token is sent but is invalid or expired
    """
    if credentials is None:
        return None
    actor = decode_access_token(credentials.credentials)
    set_actor(str(actor.id), actor.role.value)
    return actor


async def get_current_actor(
    actor: Annotated[Optional[Actor], Depends(get_optional_actor)],
) -> Actor:
    """
    Require an authenticated caller.

    Raises:
        AuthenticationError: 401 if no valid bearer token is sent
    """
    if actor is None:
        logger.warning("Authentication failed: No credentials provided")
        raise AuthenticationError("Not authenticated", reason="missing")
    return actor


def require_role(*allowed_roles: UserRole):
    """
    Create a dependency that requires one of the given roles.

    Example:
        @router.post("/", dependencies=[Depends(require_role(UserRole.SUPPLIER))])
    """

    async def role_checker(
        actor: Annotated[Actor, Depends(get_current_actor)],
    ) -> Actor:
        if actor.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                actor_id=str(actor.id),
                role=actor.role.value,
                required_roles=[role.value for role in allowed_roles],
            )
            raise AuthorizationError(
                "Insufficient permissions",
                required_roles=[role.value for role in allowed_roles],
            )
        return actor

    return role_checker


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
OptionalActor = Annotated[Optional[Actor], Depends(get_optional_actor)]
PartyActor = Annotated[Actor, Depends(require_role(UserRole.BUYER, UserRole.SUPPLIER))]
BuyerActor = Annotated[Actor, Depends(require_role(UserRole.BUYER))]
SupplierActor = Annotated[Actor, Depends(require_role(UserRole.SUPPLIER))]
AdminActor = Annotated[Actor, Depends(require_role(UserRole.ADMIN))]


def get_processor() -> PaymentProcessor:
    return get_payment_processor()


def get_notification_service(db: DatabaseSession) -> NotificationService:
    return NotificationService(NotificationRepository(db))


def get_account_service(db: DatabaseSession) -> AccountService:
    return AccountService(AccountRepository(db))


def get_product_service(db: DatabaseSession) -> ProductService:
    return ProductService(ProductRepository(db), AccountRepository(db))


def get_order_service(
    db: DatabaseSession,
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> OrderService:
    return OrderService(OrderRepository(db), ProductRepository(db), notifications)


def get_reservation_service(
    db: DatabaseSession,
    orders: Annotated[OrderService, Depends(get_order_service)],
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> ReservationService:
    return ReservationService(
        ReservationRepository(db),
        AccountRepository(db),
        ProductRepository(db),
        orders,
        notifications,
    )


def get_payment_service(
    db: DatabaseSession,
    processor: Annotated[PaymentProcessor, Depends(get_processor)],
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> PaymentService:
    return PaymentService(OrderRepository(db), PaymentRepository(db), processor, notifications)


def get_rating_service(
    db: DatabaseSession,
    notifications: Annotated[NotificationService, Depends(get_notification_service)],
) -> RatingService:
    return RatingService(
        RatingRepository(db),
        AccountRepository(db),
        OrderRepository(db),
        notifications,
    )


AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]
ProductServiceDep = Annotated[ProductService, Depends(get_product_service)]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
ReservationServiceDep = Annotated[ReservationService, Depends(get_reservation_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
RatingServiceDep = Annotated[RatingService, Depends(get_rating_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
