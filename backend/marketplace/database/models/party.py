"""
Party identities shared by every aggregate.

Buyers and suppliers both act as sellers and as counterparties in this
marketplace, so references that may point at either are stored as a tagged
union: a kind discriminator column next to an id column. PartyRef is the
in-memory form of that pair.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import ColumnElement, and_


class UserRole(str, Enum):
    """Role claim carried by access tokens."""

    BUYER = "buyer"
    SUPPLIER = "supplier"
    ADMIN = "admin"


class PartyKind(str, Enum):
    """Discriminator for party references (recipient, shop, owner, ...)."""

    BUYER = "buyer"
    SUPPLIER = "supplier"

    @classmethod
    def from_role(cls, role: UserRole) -> "PartyKind":
        """
        Map a token role onto a party kind.

        Raises:
            ValueError: If the role is admin, which is not a party
        """
        if role == UserRole.ADMIN:
            raise ValueError("Admin is not a marketplace party")
        return cls(role.value)

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class PartyRef:
    """Reference to a buyer or supplier."""

    kind: PartyKind
    id: UUID

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


def party_property(prefix: str) -> property:
    """
    Expose a ``<prefix>_kind`` / ``<prefix>_id`` column pair as a PartyRef.

    Assigning None clears both columns.
    """

    def getter(self) -> Optional[PartyRef]:
        kind = getattr(self, f"{prefix}_kind")
        party_id = getattr(self, f"{prefix}_id")
        if kind is None or party_id is None:
            return None
        return PartyRef(PartyKind(kind), party_id)

    def setter(self, ref: Optional[PartyRef]) -> None:
        setattr(self, f"{prefix}_kind", ref.kind if ref else None)
        setattr(self, f"{prefix}_id", ref.id if ref else None)

    return property(getter, setter)


def party_matches(model: Any, prefix: str, ref: PartyRef) -> ColumnElement[bool]:
    """SQL criterion selecting rows whose ``prefix`` party equals ``ref``."""
    return and_(
        getattr(model, f"{prefix}_kind") == ref.kind,
        getattr(model, f"{prefix}_id") == ref.id,
    )
