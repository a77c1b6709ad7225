"""
Product data access repository.

Provides product lookups (including row-locked batch loads used while
placing orders), filtered listings and price-history window queries.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ConflictError, UnexpectedError
from marketplace.core.logging import get_logger
from marketplace.database.models.party import PartyRef, party_matches
from marketplace.database.models.product import PriceHistoryEntry, Product

logger = get_logger(__name__)


class ProductRepositoryError(UnexpectedError):
    """Raised when a product query or write fails."""

    error_code = "PRODUCT_STORAGE_ERROR"


class ProductInUseError(ConflictError):
    """Raised when deleting a product that orders still reference."""


class ProductRepository:
    """Repository for products and their price history."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, product_id: uuid.UUID) -> Optional[Product]:
        try:
            return await self.session.get(Product, product_id)
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to load product",
                product_id=str(product_id),
                error=str(e),
            ) from e

    async def get_many_for_update(
        self, product_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, Product]:
        """
        Load products by id, locking their rows until the transaction ends.

        Returns:
            Mapping of id to product; missing ids are absent
        """
        if not product_ids:
            return {}
        try:
            result = await self.session.scalars(
                select(Product)
                .where(Product.id.in_(set(product_ids)))
                .order_by(Product.id)
                .with_for_update()
            )
            return {product.id: product for product in result.all()}
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to load products",
                product_ids=[str(pid) for pid in product_ids],
                error=str(e),
            ) from e

    async def list_products(
        self,
        offset: int,
        limit: int,
        owner: Optional[PartyRef] = None,
        search: Optional[str] = None,
        category: Optional[str] = None,
        include_inactive: bool = False,
        name: Optional[str] = None,
    ) -> tuple[list[Product], int]:
        """
        List products newest first.

        ``search`` matches name, description or shop name; ``name`` matches
        the product name only.

        Returns:
            Tuple of (page of products, total matching count)
        """
        criteria = []
        if owner is not None:
            criteria.append(party_matches(Product, "owner", owner))
        if not include_inactive:
            criteria.append(Product.is_active.is_(True))
        if category:
            criteria.append(Product.category == category)
        if name:
            criteria.append(Product.name.ilike(f"%{name}%"))
        if search:
            pattern = f"%{search}%"
            criteria.append(
                or_(
                    Product.name.ilike(pattern),
                    Product.description.ilike(pattern),
                    Product.shop_name.ilike(pattern),
                )
            )

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(Product).where(*criteria)
            )
            result = await self.session.scalars(
                select(Product)
                .where(*criteria)
                .order_by(Product.created_at.desc(), Product.id)
                .offset(offset)
                .limit(limit)
            )
            return list(result.all()), int(total or 0)
        except SQLAlchemyError as e:
            raise ProductRepositoryError("Failed to list products", error=str(e)) from e

    async def get_price_history_since(
        self, product_id: uuid.UUID, since: datetime
    ) -> list[PriceHistoryEntry]:
        """History entries recorded at or after ``since``, oldest first."""
        try:
            result = await self.session.scalars(
                select(PriceHistoryEntry)
                .where(
                    PriceHistoryEntry.product_id == product_id,
                    PriceHistoryEntry.recorded_at >= since,
                )
                .order_by(PriceHistoryEntry.recorded_at)
            )
            return list(result.all())
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to load price history",
                product_id=str(product_id),
                error=str(e),
            ) from e

    async def add(self, product: Product) -> Product:
        try:
            self.session.add(product)
            await self.session.flush()
            logger.info("Product persisted", product_id=str(product.id))
            return product
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to create product",
                error=str(e),
            ) from e

    async def save(self, *products: Product) -> None:
        """Flush pending changes of the given products."""
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to update products",
                product_ids=[str(p.id) for p in products],
                error=str(e),
            ) from e

    async def delete(self, product: Product) -> None:
        try:
            await self.session.delete(product)
            await self.session.flush()
        except IntegrityError as e:
            raise ProductInUseError(
                "Product is referenced by orders; deactivate it instead",
                product_id=str(product.id),
            ) from e
        except SQLAlchemyError as e:
            raise ProductRepositoryError(
                "Failed to delete product",
                product_id=str(product.id),
                error=str(e),
            ) from e
