"""
Account data access repository for buyers and suppliers.
"""

import uuid
from typing import Optional, Sequence, Union

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ConflictError, UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.account import Buyer, Supplier
from marketplace.database.models.party import PartyKind, PartyRef

logger = get_logger(__name__)

Account = Union[Buyer, Supplier]

ACCOUNT_MODELS: dict[PartyKind, type] = {
    PartyKind.BUYER: Buyer,
    PartyKind.SUPPLIER: Supplier,
}


class AccountRepositoryError(UnexpectedError):
    """Raised when an account query or write fails."""

    error_code = "ACCOUNT_STORAGE_ERROR"


class DuplicateEmailError(ConflictError):
    """Raised when an email is already registered."""

    error_code = "EMAIL_EXISTS"


class AccountRepository:
    """Repository for buyer and supplier accounts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, kind: PartyKind, account_id: uuid.UUID) -> Optional[Account]:
        try:
            return await self.session.get(ACCOUNT_MODELS[kind], account_id)
        except SQLAlchemyError as e:
            raise AccountRepositoryError(
                "Failed to load account",
                kind=kind.value,
                account_id=str(account_id),
                error=str(e),
            ) from e

    async def get_party(self, ref: PartyRef) -> Optional[Account]:
        return await self.get(ref.kind, ref.id)

    async def get_by_email(self, kind: PartyKind, email: str) -> Optional[Account]:
        """Case-insensitive lookup by login email."""
        model = ACCOUNT_MODELS[kind]
        try:
            return await self.session.scalar(
                select(model).where(func.lower(model.email) == email.lower().strip())
            )
        except SQLAlchemyError as e:
            raise AccountRepositoryError(
                "Failed to load account by email",
                kind=kind.value,
                error=str(e),
            ) from e

    async def add(self, account: Account) -> Account:
        """
        Persist a new account.

        Raises:
            DuplicateEmailError: If the email is already registered
            AccountRepositoryError: On any other storage failure
        """
        try:
            self.session.add(account)
            await self.session.flush()
            return account
        except IntegrityError as e:
            raise DuplicateEmailError(
                "An account with this email already exists",
                email=account.email,
            ) from e
        except SQLAlchemyError as e:
            raise AccountRepositoryError("Failed to create account", error=str(e)) from e

    async def save(self, account: Account) -> Account:
        try:
            await self.session.flush()
            return account
        except SQLAlchemyError as e:
            raise AccountRepositoryError(
                "Failed to update account",
                account_id=str(account.id),
                error=str(e),
            ) from e

    async def get_many(self, kind: PartyKind, account_ids: Sequence[uuid.UUID]) -> list[Account]:
        """Accounts of one kind by id; missing ids are skipped."""
        if not account_ids:
            return []
        model = ACCOUNT_MODELS[kind]
        try:
            result = await self.session.scalars(
                select(model).where(model.id.in_(set(account_ids)))
            )
            return list(result.all())
        except SQLAlchemyError as e:
            raise AccountRepositoryError(
                "Failed to load accounts",
                kind=kind.value,
                error=str(e),
            ) from e

    async def list_suppliers(
        self,
        offset: int,
        limit: int,
        search: Optional[str] = None,
    ) -> tuple[list[Supplier], int]:
        """
        List active suppliers newest first, optionally matching ``search``
        against name, business name or email.

        Returns:
            Tuple of (page of suppliers, total matching count)
        """
        criteria = [Supplier.is_active.is_(True)]
        if search:
            pattern = f"%{search}%"
            criteria.append(
                or_(
                    Supplier.full_name.ilike(pattern),
                    Supplier.business_name.ilike(pattern),
                    Supplier.email.ilike(pattern),
                )
            )

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Supplier).where(*criteria)
            )
            result = await self.session.scalars(
                select(Supplier)
                .where(*criteria)
                .order_by(Supplier.created_at.desc(), Supplier.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise AccountRepositoryError("Failed to list suppliers", error=str(e)) from e
