"""
Security utilities for password hashing and access tokens.

Passwords are hashed with bcrypt through passlib. Access tokens are HS256
JWTs carrying the party id, role and email; decoding one yields the Actor
every service operation is authorized against.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from marketplace.core.config import get_settings
from marketplace.core.exceptions import AuthenticationError
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyKind, PartyRef, UserRole

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
    bcrypt__ident="2b",
)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller resolved from a bearer token."""

    id: UUID
    role: UserRole
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def party(self) -> Optional[PartyRef]:
        """Party reference for buyers and suppliers, None for admins."""
        if self.is_admin:
            return None
        return PartyRef(PartyKind.from_role(self.role), self.id)

    def is_party(self, ref: Optional[PartyRef]) -> bool:
        return ref is not None and self.party == ref


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        Hashed password string

    Raises:
        ValueError: If password is empty
    """
    if not password:
        raise ValueError("Password cannot be empty")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a plain password against a bcrypt hash.

    Empty values never verify.
    """
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    actor: Actor,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token for an actor.

    Args:
        actor: Identity to encode
        expires_delta: Optional custom lifetime

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )

    claims: dict[str, Any] = {
        "sub": str(actor.id),
        "id": str(actor.id),
        "role": actor.role.value,
        "email": actor.email,
        "iat": now,
        "exp": expire,
    }

    token = jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)

    logger.info(
        "Access token created",
        subject=str(actor.id),
        role=actor.role.value,
        expires_at=expire.isoformat(),
    )

    return token


def decode_access_token(token: str) -> Actor:
    """
    Decode and validate an access token.

    Args:
        token: JWT token string

    Returns:
        Actor described by the token claims

    Raises:
        AuthenticationError: If the token is empty, expired, malformed or
            carries unusable claims
    """
    if not token:
        raise AuthenticationError("Token cannot be empty", reason="empty")

    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError as e:
        logger.warning("Token has expired")
        raise AuthenticationError("Token has expired", reason="expired") from e
    except JWTError as e:
        logger.warning("Invalid token", error=str(e))
        raise AuthenticationError("Invalid token", reason="invalid") from e

    try:
        actor_id = UUID(payload.get("id") or payload["sub"])
        role = UserRole(payload["role"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Token carries invalid claims", claims=list(payload))
        raise AuthenticationError("Invalid token claims", reason="claims") from e

    return Actor(id=actor_id, role=role, email=payload.get("email"))
