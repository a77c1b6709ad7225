"""
Product catalogue service.

Owners list, edit and remove their products. Every price change, including
the initial listing price, goes through Product.add_price_history so the
history always explains the current price.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence

from marketplace.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from marketplace.core.logging import get_logger
from marketplace.core.security import Actor
from marketplace.database.models.account import Buyer
from marketplace.database.models.party import PartyKind, PartyRef
from marketplace.database.models.product import PriceHistoryEntry, Product
from marketplace.services.accounts.repository import Account, AccountRepository
from marketplace.services.products.repository import ProductRepository

logger = get_logger(__name__)

INITIAL_PRICE_REASON = "Initial price"
BULK_PRICE_REASON = "Bulk price update"

UPDATABLE_FIELDS = (
    "name",
    "description",
    "category",
    "unit",
    "stock",
    "shop_name",
    "location",
    "is_active",
)


class ProductNotFoundError(NotFoundError):
    """Raised when a product does not exist."""


class ProductAccessError(AuthorizationError):
    """Raised when the caller does not own the product."""


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _shop_summary(owner: PartyRef, account: Account, products: list[Product]) -> dict[str, Any]:
    product = products[0]
    if isinstance(account, Buyer):
        shop_name, location = account.shop_name, account.shop_location
    else:
        shop_name, location = account.business_name or account.full_name, account.location
    return {
        "shop_kind": owner.kind,
        "shop_id": owner.id,
        "shop_name": shop_name,
        "shop_location": location or product.location,
        "contact_number": account.contact_number,
        "product_id": product.id,
        "product_name": product.name,
        "price": product.price,
        "unit": product.unit,
        "stock": product.stock,
        "product_count": len(products),
    }


class ProductService:
    """Product listing and price management."""

    def __init__(self, repository: ProductRepository, account_repository: AccountRepository):
        self.repository = repository
        self.account_repository = account_repository

    async def create_product(
        self,
        actor: Actor,
        name: str,
        price: Decimal,
        stock: int = 0,
        unit: str = "kg",
        description: Optional[str] = None,
        category: Optional[str] = None,
        shop_name: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Product:
        """
        List a new product owned by the actor.

        The listing price is recorded as the first price-history entry.

        Raises:
            ProductAccessError: If the actor is not a buyer or supplier
            ValidationError: If price or stock is negative
        """
        owner = self._require_party(actor)
        if price < 0:
            raise ValidationError("Price cannot be negative", price=str(price))
        if stock < 0:
            raise ValidationError("Stock cannot be negative", stock=stock)

        product = Product(
            id=uuid.uuid4(),
            name=name,
            description=description,
            category=category,
            unit=unit,
            stock=stock,
            shop_name=shop_name,
            location=location,
            is_active=True,
            price_history=[],
        )
        product.owner = owner
        product.add_price_history(price, editor=owner, reason=INITIAL_PRICE_REASON)

        product = await self.repository.add(product)
        logger.info(
            "Product created",
            product_id=str(product.id),
            owner=str(owner),
            price=str(price),
        )
        return product

    async def get_product(self, product_id: uuid.UUID) -> Product:
        product = await self.repository.get_by_id(product_id)
        if product is None:
            raise ProductNotFoundError("Product not found", product_id=str(product_id))
        return product

    async def list_products(
        self,
        page: int = 1,
        limit: int = 10,
        owner: Optional[PartyRef] = None,
        search: Optional[str] = None,
        category: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        List active products.

        Returns:
            Dictionary with items, total, page and limit
        """
        items, total = await self.repository.list_products(
            offset=(page - 1) * limit,
            limit=limit,
            owner=owner,
            search=search,
            category=category,
        )
        return {"items": items, "total": total, "page": page, "limit": limit}

    async def update_product(
        self,
        product_id: uuid.UUID,
        actor: Actor,
        changes: dict[str, Any],
    ) -> Product:
        """
        Update a product owned by the actor.

        A ``price`` that differs from the current price appends a history
        entry, with ``price_reason`` as its reason when given.

        Raises:
            ProductNotFoundError: If the product does not exist
            ProductAccessError: If the actor is not the owner
            ValidationError: If the new price or stock is negative
        """
        product = await self._get_owned(product_id, actor)

        new_price = changes.get("price")
        if new_price is not None:
            new_price = Decimal(str(new_price))
            if new_price < 0:
                raise ValidationError("Price cannot be negative", price=str(new_price))
        if changes.get("stock") is not None and changes["stock"] < 0:
            raise ValidationError("Stock cannot be negative", stock=changes["stock"])

        for field in UPDATABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(product, field, changes[field])

        if new_price is not None and new_price != product.price:
            product.add_price_history(
                new_price,
                editor=actor.party,
                reason=changes.get("price_reason"),
            )
            logger.info(
                "Product price changed",
                product_id=str(product_id),
                new_price=str(new_price),
            )

        await self.repository.save(product)
        logger.info("Product updated", product_id=str(product_id))
        return product

    async def delete_product(self, product_id: uuid.UUID, actor: Actor) -> None:
        """
        Delete a product owned by the actor, with its price history.

        Raises:
            ProductNotFoundError: If the product does not exist
            ProductAccessError: If the actor is not the owner
            ProductInUseError: If orders reference the product
        """
        product = await self._get_owned(product_id, actor)
        await self.repository.delete(product)
        logger.info("Product deleted", product_id=str(product_id))

    async def get_price_history(
        self, product_id: uuid.UUID, limit: int = 10
    ) -> list[PriceHistoryEntry]:
        """Most recent price entries, newest first."""
        product = await self.get_product(product_id)
        return product.recent_price_history(limit)

    async def get_price_trends(self, product_id: uuid.UUID, days: int = 30) -> dict[str, Any]:
        """
        Summarize price movement over the last ``days`` days.

        Returns:
            Dictionary with the window's points, min/max/average, first and
            latest price, and absolute and percent change. With no entries
            in the window the statistics are None and the current price is
            reported as latest.
        """
        product = await self.get_product(product_id)
        since = datetime.now(timezone.utc) - timedelta(days=days)
        entries = await self.repository.get_price_history_since(product_id, since)

        trends: dict[str, Any] = {
            "product_id": product.id,
            "product_name": product.name,
            "current_price": product.price,
            "days": days,
            "points": [
                {"price": entry.price, "recorded_at": entry.recorded_at, "reason": entry.reason}
                for entry in entries
            ],
            "min_price": None,
            "max_price": None,
            "average_price": None,
            "first_price": None,
            "latest_price": product.price,
            "change": None,
            "change_percent": None,
        }
        if not entries:
            return trends

        prices = [entry.price for entry in entries]
        first, latest = prices[0], prices[-1]
        change = latest - first
        trends.update(
            min_price=min(prices),
            max_price=max(prices),
            average_price=_quantize(sum(prices, Decimal("0")) / len(prices)),
            first_price=first,
            latest_price=latest,
            change=change,
            change_percent=_quantize(change / first * 100) if first else None,
        )
        return trends

    async def bulk_update_prices(
        self,
        actor: Actor,
        updates: Sequence[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Apply several price changes, reporting each item's outcome.

        Items fail individually (missing, not owned, negative price) without
        stopping the others. An unchanged price is skipped and logs no
        history.

        Args:
            actor: Owner of the products
            updates: Items with ``product_id``, ``price`` and optional ``reason``

        Returns:
            Dictionary with updated, skipped and failed counts and per-item results
        """
        editor = self._require_party(actor)
        results = []
        changed = []

        for update in updates:
            product_id = update["product_id"]
            new_price = Decimal(str(update["price"]))
            result: dict[str, Any] = {"product_id": product_id}
            try:
                if new_price < 0:
                    raise ValidationError("Price cannot be negative")
                product = await self._get_owned(product_id, actor)
            except (ValidationError, NotFoundError, AuthorizationError) as e:
                result.update(status="failed", error=e.message)
                results.append(result)
                continue

            if new_price == product.price:
                result.update(status="skipped", price=product.price)
            else:
                old_price = product.price
                product.add_price_history(
                    new_price,
                    editor=editor,
                    reason=update.get("reason") or BULK_PRICE_REASON,
                )
                changed.append(product)
                result.update(status="updated", old_price=old_price, price=new_price)
            results.append(result)

        if changed:
            await self.repository.save(*changed)

        summary = {
            "updated": sum(1 for r in results if r["status"] == "updated"),
            "skipped": sum(1 for r in results if r["status"] == "skipped"),
            "failed": sum(1 for r in results if r["status"] == "failed"),
            "results": results,
        }
        logger.info(
            "Bulk price update completed",
            editor=str(editor),
            updated=summary["updated"],
            skipped=summary["skipped"],
            failed=summary["failed"],
        )
        return summary

    async def find_shops(self, product_name: str, limit: int = 50) -> dict[str, Any]:
        """
        Shops selling an active product whose name matches ``product_name``.

        A shop is any buyer or supplier owning a matching product; each
        appears once, described by its newest matching product. Deactivated
        accounts are left out.

        Args:
            product_name: Case-insensitive fragment of the product name
            limit: Maximum number of matching products considered

        Returns:
            Dictionary with product_name, total and shops

        Raises:
            ValidationError: If the name is blank
        """
        name = product_name.strip()
        if not name:
            raise ValidationError("Product name is required")

        products, _ = await self.repository.list_products(offset=0, limit=limit, name=name)
        by_owner: dict[PartyRef, list[Product]] = {}
        for product in products:
            by_owner.setdefault(product.owner, []).append(product)

        accounts: dict[PartyRef, Account] = {}
        for kind in PartyKind:
            ids = [owner.id for owner in by_owner if owner.kind == kind]
            if not ids:
                continue
            for account in await self.account_repository.get_many(kind, ids):
                accounts[PartyRef(kind, account.id)] = account

        shops = []
        for owner, owned in by_owner.items():
            account = accounts.get(owner)
            if account is None or not account.is_active:
                continue
            shops.append(_shop_summary(owner, account, owned))

        logger.info("Shop search", product_name=name, products=len(products), shops=len(shops))
        return {"product_name": name, "total": len(shops), "shops": shops}

    async def _get_owned(self, product_id: uuid.UUID, actor: Actor) -> Product:
        product = await self.get_product(product_id)
        if not actor.is_party(product.owner):
            logger.warning(
                "Product access denied",
                product_id=str(product_id),
                actor_id=str(actor.id),
            )
            raise ProductAccessError(
                "Not authorized to modify this product",
                product_id=str(product_id),
            )
        return product

    @staticmethod
    def _require_party(actor: Actor) -> PartyRef:
        party = actor.party
        if party is None:
            raise ProductAccessError("Only buyers and suppliers can manage products")
        return party
