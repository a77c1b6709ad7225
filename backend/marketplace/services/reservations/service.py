"""
Reservation service managing requests for future quantities of a product.

A reservation is addressed to a shop (a supplier, or a buyer acting as a
seller). The shop accepts, possibly with a counter-offer, or rejects it; the
requester may cancel it while pending; pending reservations past their
expiry are swept to expired. An accepted reservation converts into an order
exactly once.
"""

import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from marketplace.core.config import get_settings
from marketplace.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from marketplace.core.logging import get_logger, log_performance
from marketplace.core.security import Actor
from marketplace.database.models.notification import NotificationPriority, NotificationType
from marketplace.database.models.order import Order, PaymentMethod
from marketplace.database.models.party import PartyKind, PartyRef
from marketplace.database.models.reservation import (
    Reservation,
    ReservationPaymentMethod,
    ReservationStatus,
)
from marketplace.services.accounts.repository import AccountRepository
from marketplace.services.notifications.service import NotificationService
from marketplace.services.orders.service import OrderService
from marketplace.services.orders.state_machine import InvalidTransitionError
from marketplace.services.products.repository import ProductRepository
from marketplace.services.reservations.repository import ReservationRepository

logger = get_logger(__name__)

RESERVATION_TRANSITIONS: dict[ReservationStatus, set[ReservationStatus]] = {
    ReservationStatus.PENDING: {
        ReservationStatus.ACCEPTED,
        ReservationStatus.REJECTED,
        ReservationStatus.CANCELLED,
        ReservationStatus.EXPIRED,
    },
    ReservationStatus.ACCEPTED: {ReservationStatus.CONVERTED_TO_ORDER},
}

ORDER_PAYMENT_METHODS = {
    ReservationPaymentMethod.ADVANCE: PaymentMethod.BANK_TRANSFER,
    ReservationPaymentMethod.COD: PaymentMethod.CASH_ON_DELIVERY,
}

CONVERSION_NOTE = "Created from reservation {number}"


class ReservationNotFoundError(NotFoundError):
    """Raised when a reservation does not exist."""


class ShopNotFoundError(NotFoundError):
    """Raised when the addressed shop is neither a supplier nor a buyer."""


class ReservationAccessError(AuthorizationError):
    """Raised when the caller may not act on the reservation."""


class ReservationExpiredError(ValidationError):
    """Raised when acting on a pending reservation past its expiry."""

    error_code = "RESERVATION_EXPIRED"


def generate_reservation_number(sequence: int, now_ms: Optional[int] = None) -> str:
    """Build ``RES-<epoch ms>-<sequence:04d>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"RES-{now_ms}-{sequence:04d}"


class ReservationService:
    """
    Reservation workflow service.

    Attributes:
        repository: Reservation repository
        account_repository: Resolves shops
        product_repository: Loads reserved products
        order_service: Builds and persists converted orders
        notification_service: Notification dispatcher
    """

    def __init__(
        self,
        repository: ReservationRepository,
        account_repository: AccountRepository,
        product_repository: ProductRepository,
        order_service: OrderService,
        notification_service: NotificationService,
    ):
        self.repository = repository
        self.account_repository = account_repository
        self.product_repository = product_repository
        self.order_service = order_service
        self.notification_service = notification_service

    async def create_reservation(
        self,
        shop_id: uuid.UUID,
        requester_name: str,
        requester_contact: str,
        requester_location: str,
        quantity: int,
        payment_method: ReservationPaymentMethod,
        actor: Optional[Actor] = None,
        product_id: Optional[uuid.UUID] = None,
        product_name: Optional[str] = None,
        requested_delivery_date: Optional[datetime] = None,
        bank_account_number: Optional[str] = None,
        bank_name: Optional[str] = None,
        bank_branch_holder_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Reservation:
        """
        Create a pending reservation addressed to a shop.

        The shop id is resolved as a supplier first, then as a buyer.

        Args:
            shop_id: Identifier of the addressed shop
            requester_name: Requester display name
            requester_contact: Requester contact number
            requester_location: Requester location
            quantity: Requested quantity, at least 1
            payment_method: ``advance`` or ``cod``
            actor: Authenticated requester, if any
            product_id: Reserved product, if listed
            product_name: Free-text product name; defaults to the product's
            requested_delivery_date: Desired delivery date
            bank_*: Payment details, required for ``advance``
            notes: Free-text notes

        Returns:
            Created reservation

        Raises:
            ValidationError: On missing fields, bad quantity, missing bank
                details for ``advance``, or a shop reserving from itself
            ShopNotFoundError: If the shop cannot be resolved
            NotFoundError: If the product does not exist
        """
        missing = [
            name
            for name, value in (
                ("requester_name", requester_name),
                ("requester_contact", requester_contact),
                ("requester_location", requester_location),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError("Missing required fields", fields=missing)
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", quantity=quantity)

        shop = await self._resolve_shop(shop_id)
        requester = actor.party if actor else None
        if requester is not None and requester == shop:
            raise ValidationError("A shop cannot reserve from itself")

        if product_id is not None:
            product = await self.product_repository.get_by_id(product_id)
            if product is None:
                raise NotFoundError("Product not found", product_id=str(product_id))
            product_name = product_name or product.name

        settings = get_settings()
        reservation = Reservation(
            id=uuid.uuid4(),
            reservation_number=generate_reservation_number(
                await self.repository.next_reservation_sequence()
            ),
            requester_name=requester_name.strip(),
            requester_contact=requester_contact.strip(),
            requester_location=requester_location.strip(),
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            requested_delivery_date=requested_delivery_date,
            payment_method=payment_method,
            notes=notes,
            status=ReservationStatus.PENDING,
            expires_at=datetime.now(timezone.utc)
            + timedelta(days=settings.reservation_expiry_days),
        )
        reservation.shop = shop
        reservation.requester = requester

        if payment_method == ReservationPaymentMethod.ADVANCE:
            details = {
                "bank_account_number": bank_account_number,
                "bank_name": bank_name,
                "bank_branch_holder_name": bank_branch_holder_name,
            }
            missing = [name for name, value in details.items() if not value]
            if missing:
                raise ValidationError(
                    "Bank details are required for advance payment",
                    fields=missing,
                )
            for name, value in details.items():
                setattr(reservation, name, value)
        else:
            reservation.clear_bank_details()

        reservation = await self.repository.add(reservation)

        await self.notification_service.notify(
            recipient=shop,
            notification_type=NotificationType.RESERVATION_RECEIVED,
            sender=actor,
            related_reservation_id=reservation.id,
            related_product_id=product_id,
            requester_name=reservation.requester_name,
            quantity=reservation.quantity,
            product_name=reservation.product_name,
            reservation_number=reservation.reservation_number,
        )

        logger.info(
            "Reservation created",
            reservation_id=str(reservation.id),
            shop=str(shop),
            payment_method=payment_method.value,
        )
        return reservation

    async def accept_reservation(
        self,
        reservation_id: uuid.UUID,
        actor: Actor,
        response_message: Optional[str] = None,
        proposed_price: Optional[Decimal] = None,
        proposed_quantity: Optional[int] = None,
        proposed_delivery_date: Optional[datetime] = None,
    ) -> Reservation:
        """
        Accept a pending reservation, optionally with a counter-offer.

        Raises:
            ReservationNotFoundError: If it does not exist
            ReservationAccessError: If the actor is not the shop
            InvalidTransitionError: If it is not pending
            ReservationExpiredError: If its expiry has passed
            ValidationError: If the counter-offer is invalid
        """
        if proposed_price is not None and proposed_price < 0:
            raise ValidationError("Proposed price cannot be negative")
        if proposed_quantity is not None and proposed_quantity < 1:
            raise ValidationError("Proposed quantity must be at least 1")

        reservation = await self._respond(
            reservation_id, actor, ReservationStatus.ACCEPTED, response_message
        )
        reservation.proposed_price = proposed_price
        reservation.proposed_quantity = proposed_quantity
        reservation.proposed_delivery_date = proposed_delivery_date
        reservation = await self.repository.save(reservation)

        await self._notify_requester(
            reservation, NotificationType.RESERVATION_ACCEPTED, actor
        )
        return reservation

    async def reject_reservation(
        self,
        reservation_id: uuid.UUID,
        actor: Actor,
        response_message: Optional[str] = None,
    ) -> Reservation:
        """
        Reject a pending reservation.

        Raises:
            ReservationNotFoundError: If it does not exist
            ReservationAccessError: If the actor is not the shop
            InvalidTransitionError: If it is not pending
        """
        reservation = await self._respond(
            reservation_id, actor, ReservationStatus.REJECTED, response_message
        )
        reservation = await self.repository.save(reservation)
        await self._notify_requester(
            reservation, NotificationType.RESERVATION_REJECTED, actor
        )
        return reservation

    async def cancel_reservation(self, reservation_id: uuid.UUID, actor: Actor) -> Reservation:
        """
        Cancel a pending reservation on behalf of its requester.

        Raises:
            ReservationNotFoundError: If it does not exist
            ReservationAccessError: If the actor is not the requester
            InvalidTransitionError: If it is not pending
        """
        reservation = await self._get_existing(reservation_id, for_update=True)
        if not actor.is_party(reservation.requester):
            raise ReservationAccessError(
                "Only the requester can cancel this reservation",
                reservation_id=str(reservation_id),
            )
        self._transition(reservation, ReservationStatus.CANCELLED)
        reservation = await self.repository.save(reservation)

        await self.notification_service.notify(
            recipient=reservation.shop,
            notification_type=NotificationType.RESERVATION_CANCELLED,
            sender=actor,
            related_reservation_id=reservation.id,
            reservation_number=reservation.reservation_number,
        )
        logger.info("Reservation cancelled", reservation_id=str(reservation_id))
        return reservation

    async def convert_to_order(self, reservation_id: uuid.UUID, actor: Actor) -> Order:
        """
        Turn an accepted reservation into a pending order.

        The order uses the counter-offer quantity and price where given, else
        the requested quantity and the product's current price. Stock is not
        consumed. The reservation row is locked, so a concurrent or repeated
        conversion sees ``converted_to_order`` and fails.

        Args:
            reservation_id: Reservation to convert
            actor: Shop or requester of the reservation

        Returns:
            Created order

        Raises:
            ReservationNotFoundError: If it does not exist
            ReservationAccessError: If the actor is neither shop nor requester
            InvalidTransitionError: If it is not accepted, including when it
                was already converted
            ValidationError: If it has no requester account or no product
        """
        reservation = await self._get_existing(reservation_id, for_update=True)
        if not (actor.is_party(reservation.shop) or actor.is_party(reservation.requester)):
            raise ReservationAccessError(
                "Not authorized to convert this reservation",
                reservation_id=str(reservation_id),
            )
        self._validate_transition(reservation, ReservationStatus.CONVERTED_TO_ORDER)

        buyer = reservation.requester
        if buyer is None:
            raise ValidationError(
                "Reservation has no requester account to order for",
                reservation_id=str(reservation_id),
            )
        product = (
            await self.product_repository.get_by_id(reservation.product_id)
            if reservation.product_id
            else None
        )
        if product is None:
            raise ValidationError(
                "Reservation has no product to order",
                reservation_id=str(reservation_id),
            )

        with log_performance(
            logger, "convert_reservation", reservation_id=str(reservation_id)
        ):
            unit_price = (
                reservation.proposed_price
                if reservation.proposed_price is not None
                else product.price
            )
            order = OrderService.build_order(
                buyer=buyer,
                supplier=reservation.shop,
                priced_lines=[(product, reservation.agreed_quantity, unit_price)],
                shipping_address={
                    "name": reservation.requester_name,
                    "contact_number": reservation.requester_contact,
                    "location": reservation.requester_location,
                },
                payment_method=ORDER_PAYMENT_METHODS[reservation.payment_method],
                order_number=await self.order_service.next_order_number(),
                actor=actor,
                note=CONVERSION_NOTE.format(number=reservation.reservation_number),
            )
            order.estimated_delivery = (
                reservation.proposed_delivery_date or reservation.requested_delivery_date
            )
            order.notes = reservation.notes
            order = await self.order_service.repository.add(order)

            self._transition(reservation, ReservationStatus.CONVERTED_TO_ORDER)
            reservation.converted_order_id = order.id
            reservation.converted_at = datetime.now(timezone.utc)
            await self.repository.save(reservation)

        await self.notification_service.notify(
            recipient=buyer,
            notification_type=NotificationType.ORDER_CREATED,
            sender=actor,
            related_order_id=order.id,
            related_reservation_id=reservation.id,
            priority=NotificationPriority.HIGH,
            order_number=order.order_number,
            amount=order.total_amount,
        )

        logger.info(
            "Reservation converted to order",
            reservation_id=str(reservation_id),
            order_id=str(order.id),
        )
        return order

    async def get_reservation(self, reservation_id: uuid.UUID, actor: Actor) -> Reservation:
        """
        Load a reservation visible to the actor (shop, requester or admin).

        Raises:
            ReservationNotFoundError: If it does not exist
            ReservationAccessError: If the actor may not view it
        """
        reservation = await self._get_existing(reservation_id)
        if not (
            actor.is_admin
            or actor.is_party(reservation.shop)
            or actor.is_party(reservation.requester)
        ):
            raise ReservationAccessError(
                "Not authorized to view this reservation",
                reservation_id=str(reservation_id),
            )
        return reservation

    async def list_reservations(
        self,
        actor: Actor,
        role_view: str = "shop",
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """
        List reservations received by (``shop``) or made by (``requester``)
        the actor.

        Returns:
            Dictionary with items, total, page and limit
        """
        party = self._require_party(actor)
        items, total = await self.repository.list_for_party(
            party,
            role_view=role_view,
            offset=(page - 1) * limit,
            limit=limit,
            status=status,
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def track_reservations(
        self,
        contact_number: str,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """
        List reservations made with a contact number.

        Lets requesters who reserved without an account follow up on their
        requests.

        Returns:
            Dictionary with items, total, page and limit

        Raises:
            ValidationError: If the contact number is blank
        """
        contact = contact_number.strip()
        if not contact:
            raise ValidationError("Contact number is required")
        items, total = await self.repository.list_by_contact(
            contact,
            offset=(page - 1) * limit,
            limit=limit,
        )
        logger.info("Reservations tracked by contact", total=total)
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def get_statistics(self, actor: Actor) -> dict[str, Any]:
        """Counts of reservations received by the actor, per status."""
        party = self._require_party(actor)
        rows = await self.repository.counts_by_status(party)
        by_status = {status.value: 0 for status in ReservationStatus}
        for row in rows:
            by_status[row["status"].value] = row["count"]
        return {"total": sum(by_status.values()), "by_status": by_status}

    async def expire_old_reservations(self) -> int:
        """
        Expire every pending reservation past its expiry.

        Returns:
            Number of reservations expired
        """
        with log_performance(logger, "expire_reservations"):
            count = await self.repository.expire_pending(datetime.now(timezone.utc))
        logger.info("Reservations expired", count=count)
        return count

    async def _respond(
        self,
        reservation_id: uuid.UUID,
        actor: Actor,
        target: ReservationStatus,
        response_message: Optional[str],
    ) -> Reservation:
        reservation = await self._get_existing(reservation_id, for_update=True)
        if not actor.is_party(reservation.shop):
            logger.warning(
                "Reservation response denied",
                reservation_id=str(reservation_id),
                actor_id=str(actor.id),
            )
            raise ReservationAccessError(
                "Only the shop can respond to this reservation",
                reservation_id=str(reservation_id),
            )
        self._validate_transition(reservation, target)
        if reservation.expires_at <= datetime.now(timezone.utc):
            raise ReservationExpiredError(
                "Reservation has expired",
                reservation_id=str(reservation_id),
            )

        self._transition(reservation, target)
        reservation.response_message = response_message
        reservation.responded_at = datetime.now(timezone.utc)
        logger.info(
            "Reservation responded",
            reservation_id=str(reservation_id),
            status=target.value,
        )
        return reservation

    async def _notify_requester(
        self,
        reservation: Reservation,
        notification_type: NotificationType,
        actor: Actor,
    ) -> None:
        if reservation.requester is None:
            return
        await self.notification_service.notify(
            recipient=reservation.requester,
            notification_type=notification_type,
            sender=actor,
            related_reservation_id=reservation.id,
            reservation_number=reservation.reservation_number,
            message=reservation.response_message,
        )

    async def _resolve_shop(self, shop_id: uuid.UUID) -> PartyRef:
        for kind in (PartyKind.SUPPLIER, PartyKind.BUYER):
            if await self.account_repository.get(kind, shop_id) is not None:
                return PartyRef(kind, shop_id)
        raise ShopNotFoundError("Shop not found", shop_id=str(shop_id))

    async def _get_existing(
        self, reservation_id: uuid.UUID, for_update: bool = False
    ) -> Reservation:
        reservation = await self.repository.get_by_id(reservation_id, for_update=for_update)
        if reservation is None:
            raise ReservationNotFoundError(
                "Reservation not found",
                reservation_id=str(reservation_id),
            )
        return reservation

    @staticmethod
    def _validate_transition(reservation: Reservation, target: ReservationStatus) -> None:
        if target not in RESERVATION_TRANSITIONS.get(reservation.status, set()):
            raise InvalidTransitionError(
                f"Cannot change reservation status from {reservation.status.value} "
                f"to {target.value}",
                current_state=reservation.status,
                target_state=target,
                reservation_id=str(reservation.id),
            )

    def _transition(self, reservation: Reservation, target: ReservationStatus) -> None:
        self._validate_transition(reservation, target)
        reservation.status = target

    @staticmethod
    def _require_party(actor: Actor) -> PartyRef:
        party = actor.party
        if party is None:
            raise ReservationAccessError("Only buyers and suppliers have reservations")
        return party
