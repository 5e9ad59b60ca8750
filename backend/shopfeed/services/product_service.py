"""Product store backed by SQLAlchemy.

Upserts normalized products keyed by source_url and tracks price history.
Each call opens its own session so concurrent upserts from the importer
never share a transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopfeed.core.exceptions import StoreUnavailableError, UpsertConflictError
from shopfeed.models.price_history import PriceHistory
from shopfeed.models.product import Product
from shopfeed.scrapers.base import NormalizedProduct

logger = structlog.get_logger(__name__)


@dataclass
class UpsertResult:
    """Outcome of one upsert."""

    id: uuid.UUID
    action: str  # 'inserted' or 'updated'


def _product_fields(normalized: NormalizedProduct) -> Dict[str, Any]:
    """Column values written on both insert and update."""
    return {
        "name": normalized.name,
        "description": normalized.description,
        "brand": normalized.brand,
        "material": normalized.material,
        "category": normalized.category,
        "gender": normalized.gender,
        "condition": normalized.condition,
        "price": normalized.price,
        "original_price": normalized.original_price,
        "image_url": normalized.image_url,
        "image_urls": normalized.image_urls,
        "variants": [v.to_dict() for v in normalized.variants] if normalized.variants else None,
        "options": [o.to_dict() for o in normalized.options] if normalized.options else None,
        "sizes": normalized.sizes,
        "size": normalized.size,
        "color_group_id": normalized.color_group_id,
        "color_name": normalized.color_name,
        "color_hex": normalized.color_hex,
        "source_platform": normalized.source_platform,
    }


class ProductService:
    """Service for upserting products and recording price history."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize product service.

        Args:
            session_factory: Session factory bound to the store engine
        """
        self.session_factory = session_factory
        self.logger = logger.bind(service="product_service")

    async def ping(self) -> None:
        """Check that the store answers a trivial query.

        Raises:
            StoreUnavailableError: If the store cannot be reached
        """
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(str(e)) from e

    async def upsert(self, normalized: NormalizedProduct) -> UpsertResult:
        """Insert or update a product by its source_url.

        Updates patch the display fields and append a price-history row
        only when the price changed. Inserts seed the history with the
        initial price. Re-submitting an unchanged product reports
        ``updated`` and adds no history.

        Args:
            normalized: NormalizedProduct from an adapter

        Returns:
            UpsertResult with the product id and the action taken

        Raises:
            UpsertConflictError: A concurrent insert claimed the same URL
        """
        now = datetime.now(timezone.utc)
        fields = _product_fields(normalized)

        async with self.session_factory() as session:
            result = await session.execute(
                select(Product).where(Product.source_url == normalized.source_url)
            )
            product = result.scalar_one_or_none()

            if product is not None:
                price_changed = product.price != normalized.price
                for key, value in fields.items():
                    setattr(product, key, value)
                product.last_scraped_at = now

                if price_changed:
                    session.add(
                        PriceHistory(
                            product_id=product.id,
                            price=normalized.price,
                            source=normalized.source_platform,
                        )
                    )
                action = "updated"
            else:
                product = Product(source_url=normalized.source_url, last_scraped_at=now, **fields)
                session.add(product)
                await self._flush(session, normalized.source_url)
                session.add(
                    PriceHistory(
                        product_id=product.id,
                        price=normalized.price,
                        source=normalized.source_platform,
                    )
                )
                action = "inserted"

            await self._flush(session, normalized.source_url)
            await session.commit()

        self.logger.debug("product_upserted", product_id=str(product.id), action=action)
        return UpsertResult(id=product.id, action=action)

    async def _flush(self, session: AsyncSession, source_url: str) -> None:
        try:
            await session.flush()
        except IntegrityError as e:
            await session.rollback()
            raise UpsertConflictError(source_url) from e

    async def count(self) -> int:
        """Total number of stored products."""
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(Product.id)))
            return result.scalar_one()

    async def get_price_history(self, source_url: str) -> List[PriceHistory]:
        """Price history rows for a product, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(PriceHistory)
                .join(Product, PriceHistory.product_id == Product.id)
                .where(Product.source_url == source_url)
                .order_by(PriceHistory.recorded_at.asc())
            )
            return list(result.scalars().all())
