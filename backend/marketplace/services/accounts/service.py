"""
Account service implementation.

This module provides buyer and supplier registration, login with bcrypt
password verification and JWT issuance, profile lookup and buyer bank
details maintenance.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from marketplace.core.config import get_settings
from marketplace.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from marketplace.core.logging import get_logger
from marketplace.core.security import Actor, create_access_token, hash_password, verify_password
from marketplace.database.models.account import Buyer, Supplier
from marketplace.database.models.party import PartyKind, PartyRef, UserRole
from marketplace.services.accounts.repository import (
    Account,
    AccountRepository,
    DuplicateEmailError,
)

logger = get_logger(__name__)


class AccountNotFoundError(NotFoundError):
    """Raised when an account does not exist."""


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials do not match an active account."""

    error_code = "INVALID_CREDENTIALS"


class AccountService:
    """
    Account service for registration, authentication and profiles.

    Attributes:
        repository: Account repository
    """

    def __init__(self, repository: AccountRepository):
        self.repository = repository
        self.logger = logger.bind(service="accounts")

    async def register_buyer(
        self,
        shop_name: str,
        shop_owner_name: str,
        shop_location: str,
        contact_number: str,
        email: str,
        password: str,
        bank_account_number: Optional[str] = None,
        bank_name: Optional[str] = None,
        bank_branch_holder_name: Optional[str] = None,
    ) -> Buyer:
        """
        Register a buyer shop.

        Raises:
            DuplicateEmailError: If the email is already registered as a buyer
        """
        await self._ensure_email_available(PartyKind.BUYER, email)
        buyer = Buyer(
            id=uuid.uuid4(),
            shop_name=shop_name.strip(),
            shop_owner_name=shop_owner_name.strip(),
            shop_location=shop_location.strip(),
            contact_number=contact_number,
            email=email.lower().strip(),
            password_hash=hash_password(password),
            bank_account_number=bank_account_number,
            bank_name=bank_name,
            bank_branch_holder_name=bank_branch_holder_name,
            is_active=True,
            is_verified=False,
        )
        buyer = await self.repository.add(buyer)
        self.logger.info("Buyer registered", buyer_id=str(buyer.id), email=buyer.email)
        return buyer

    async def register_supplier(
        self,
        full_name: str,
        contact_number: str,
        email: str,
        password: str,
        business_name: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Supplier:
        """
        Register a supplier.

        Raises:
            DuplicateEmailError: If the email is already registered as a supplier
        """
        await self._ensure_email_available(PartyKind.SUPPLIER, email)
        supplier = Supplier(
            id=uuid.uuid4(),
            full_name=full_name.strip(),
            business_name=business_name,
            location=location,
            contact_number=contact_number,
            email=email.lower().strip(),
            password_hash=hash_password(password),
            is_active=True,
            is_verified=False,
        )
        supplier = await self.repository.add(supplier)
        self.logger.info(
            "Supplier registered", supplier_id=str(supplier.id), email=supplier.email
        )
        return supplier

    async def login(self, kind: PartyKind, email: str, password: str) -> dict[str, Any]:
        """
        Authenticate an account and issue an access token.

        Args:
            kind: Account kind to log in as
            email: Login email
            password: Plain text password

        Returns:
            Dictionary with access_token, token_type, expires_in and account

        Raises:
            InvalidCredentialsError: If the credentials are wrong or the
                account is inactive
        """
        self.logger.info("Login attempt", kind=kind.value, email=email)

        account = await self.repository.get_by_email(kind, email)
        if account is None or not verify_password(password, account.password_hash):
            self.logger.warning("Login failed - invalid credentials", email=email)
            raise InvalidCredentialsError("Invalid email or password")
        if not account.is_active:
            self.logger.warning("Login failed - account inactive", account_id=str(account.id))
            raise InvalidCredentialsError("Account is inactive")

        account.last_login = datetime.now(timezone.utc)
        await self.repository.save(account)

        actor = Actor(id=account.id, role=UserRole(kind.value), email=account.email)
        settings = get_settings()
        self.logger.info("Login successful", account_id=str(account.id), kind=kind.value)
        return {
            "access_token": create_access_token(actor),
            "token_type": "bearer",
            "expires_in": settings.jwt_access_token_expire_minutes * 60,
            "account": account,
        }

    async def get_account(self, ref: PartyRef) -> Account:
        account = await self.repository.get_party(ref)
        if account is None:
            raise AccountNotFoundError(
                f"{ref.kind.display_name} not found",
                party=str(ref),
            )
        return account

    async def get_profile(self, actor: Actor) -> Account:
        """
        Load the actor's own account.

        Raises:
            AuthorizationError: If the actor is an admin
            AccountNotFoundError: If the account no longer exists
        """
        if actor.party is None:
            raise AuthorizationError("Admins have no marketplace profile")
        return await self.get_account(actor.party)

    async def get_public_profile(self, kind: PartyKind, account_id: uuid.UUID) -> Account:
        """
        Load an active buyer or supplier for display to other parties.

        Raises:
            AccountNotFoundError: If the account is missing or deactivated
        """
        account = await self.repository.get(kind, account_id)
        if account is None or not account.is_active:
            raise AccountNotFoundError(
                f"{kind.display_name} not found",
                account_id=str(account_id),
            )
        return account

    async def list_suppliers(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        List active suppliers, optionally filtered by name or email.

        Returns:
            Dictionary with items, total, page and limit
        """
        items, total = await self.repository.list_suppliers(
            offset=(page - 1) * limit,
            limit=limit,
            search=search.strip() if search else None,
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def update_buyer_bank_details(
        self,
        actor: Actor,
        bank_account_number: str,
        bank_name: str,
        bank_branch_holder_name: str,
    ) -> Buyer:
        """
        Replace the buyer's payout bank details.

        Raises:
            AuthorizationError: If the actor is not a buyer
        """
        if actor.role != UserRole.BUYER:
            raise AuthorizationError("Only buyers have bank details")
        buyer = await self.get_account(actor.party)
        buyer.bank_account_number = bank_account_number
        buyer.bank_name = bank_name
        buyer.bank_branch_holder_name = bank_branch_holder_name
        await self.repository.save(buyer)
        self.logger.info("Buyer bank details updated", buyer_id=str(buyer.id))
        return buyer

    async def _ensure_email_available(self, kind: PartyKind, email: str) -> None:
        if await self.repository.get_by_email(kind, email) is not None:
            self.logger.warning("Registration failed - email already exists", email=email)
            raise DuplicateEmailError(
                "An account with this email already exists",
                email=email,
            )
