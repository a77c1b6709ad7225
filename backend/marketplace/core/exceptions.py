"""
Error taxonomy shared by repositories, services and the HTTP layer.

Every failure a workflow operation can report derives from MarketplaceError
and carries the HTTP status it maps to, a stable machine-readable code and
free-form structured context for logging. Service packages subclass these
for their own failure modes (OrderNotFoundError, InvalidTransitionError, ...).
"""

from typing import Any


class MarketplaceError(Exception):
    """Base exception for all marketplace domain errors."""

    status_code: int = 500
    error_code: str = "UNEXPECTED_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(MarketplaceError):
    """Malformed input or a violated business rule."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundError(MarketplaceError):
    """Referenced entity does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class AuthorizationError(MarketplaceError):
    """Actor lacks permission over the entity."""

    status_code = 403
    error_code = "ACCESS_DENIED"


class AuthenticationError(MarketplaceError):
    """Missing, malformed or expired credential."""

    status_code = 401
    error_code = "AUTHENTICATION_FAILED"


class ConflictError(MarketplaceError):
    """Duplicate unique key or an invalid state transition."""

    status_code = 400
    error_code = "CONFLICT"


class UnexpectedError(MarketplaceError):
    """Downstream storage or processor failure."""

    status_code = 500
    error_code = "UNEXPECTED_ERROR"
