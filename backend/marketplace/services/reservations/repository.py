"""
Reservation data access repository.

Provides reservation persistence, row-locked loads for state changes,
party-scoped listings, per-status counts and the bulk expiry update.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ConflictError, UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyRef, party_matches
from marketplace.database.models.reservation import (
    Reservation,
    ReservationStatus,
    reservation_number_seq,
)

logger = get_logger(__name__)


class ReservationRepositoryError(UnexpectedError):
    """Raised when a reservation query or write fails."""

    error_code = "RESERVATION_STORAGE_ERROR"


class DuplicateReservationNumberError(ConflictError):
    """Raised when a generated reservation number already exists."""


class ReservationRepository:
    """Repository for reservation data access operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, reservation: Reservation) -> Reservation:
        try:
            self.session.add(reservation)
            await self.session.flush()
            logger.info(
                "Reservation persisted",
                reservation_id=str(reservation.id),
                reservation_number=reservation.reservation_number,
            )
            return reservation
        except IntegrityError as e:
            raise DuplicateReservationNumberError(
                "Reservation number already exists",
                reservation_number=reservation.reservation_number,
            ) from e
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to create reservation",
                error=str(e),
            ) from e

    async def save(self, reservation: Reservation) -> Reservation:
        try:
            await self.session.flush()
            return reservation
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to update reservation",
                reservation_id=str(reservation.id),
                error=str(e),
            ) from e

    async def get_by_id(
        self, reservation_id: uuid.UUID, for_update: bool = False
    ) -> Optional[Reservation]:
        """
        Load a reservation.

        Args:
            reservation_id: Reservation identifier
            for_update: Lock the row until the transaction ends and refresh
                any instance already in the session
        """
        try:
            if not for_update:
                return await self.session.get(Reservation, reservation_id)
            return await self.session.scalar(
                select(Reservation)
                .where(Reservation.id == reservation_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to load reservation",
                reservation_id=str(reservation_id),
                error=str(e),
            ) from e

    async def next_reservation_sequence(self) -> int:
        try:
            return int(await self.session.scalar(select(reservation_number_seq.next_value())))
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to draw reservation number sequence", error=str(e)
            ) from e

    async def list_for_party(
        self,
        party: PartyRef,
        role_view: str,
        offset: int,
        limit: int,
        status: Optional[ReservationStatus] = None,
    ) -> tuple[list[Reservation], int]:
        """
        List reservations addressed to (``shop``) or made by (``requester``)
        a party, newest first.

        Returns:
            Tuple of (page of reservations, total matching count)
        """
        prefix = "shop" if role_view == "shop" else "requester"
        criteria = [party_matches(Reservation, prefix, party)]
        if status is not None:
            criteria.append(Reservation.status == status)

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Reservation).where(*criteria)
            )
            result = await self.session.scalars(
                select(Reservation)
                .where(*criteria)
                .order_by(Reservation.created_at.desc(), Reservation.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to list reservations",
                party=str(party),
                error=str(e),
            ) from e

    async def list_by_contact(
        self,
        contact: str,
        offset: int,
        limit: int,
    ) -> tuple[list[Reservation], int]:
        """Reservations made with a requester contact number, newest first."""
        criteria = [Reservation.requester_contact == contact]
        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Reservation).where(*criteria)
            )
            result = await self.session.scalars(
                select(Reservation)
                .where(*criteria)
                .order_by(Reservation.created_at.desc(), Reservation.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to list reservations by contact", error=str(e)
            ) from e

    async def counts_by_status(self, shop: PartyRef) -> list[dict[str, Any]]:
        try:
            result = await self.session.execute(
                select(Reservation.status, func.count().label("count"))
                .where(party_matches(Reservation, "shop", shop))
                .group_by(Reservation.status)
            )
            return [{"status": row.status, "count": int(row.count)} for row in result]
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to aggregate reservations",
                shop=str(shop),
                error=str(e),
            ) from e

    async def expire_pending(self, now: datetime) -> int:
        """
        Mark every pending reservation whose expiry has passed as expired.

        Returns:
            Number of reservations expired
        """
        try:
            result = await self.session.execute(
                update(Reservation)
                .where(
                    Reservation.status == ReservationStatus.PENDING,
                    Reservation.expires_at < now,
                )
                .values(status=ReservationStatus.EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
        except SQLAlchemyError as e:
            raise ReservationRepositoryError(
                "Failed to expire reservations",
                error=str(e),
            ) from e
