"""Deduplication and batched import of normalized products.

Products are upserted in fixed-size batches: every upsert of a batch runs
concurrently and the batch settles before the next one starts. Write
conflicts on the unique source_url are retried with a short backoff;
any other failure is counted and the import moves on.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Protocol, Sequence

import structlog

from shopfeed.config import settings
from shopfeed.core.exceptions import UpsertConflictError
from shopfeed.scrapers.base import NormalizedProduct
from shopfeed.scrapers.utils.retry import short_backoff, with_retry
from shopfeed.services.product_service import UpsertResult

logger = structlog.get_logger(__name__)


class ProductStore(Protocol):
    """What the importer needs from a product store."""

    async def ping(self) -> None: ...

    async def upsert(self, product: NormalizedProduct) -> UpsertResult: ...


@dataclass
class ImportSummary:
    inserted: int = 0
    updated: int = 0
    errors: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.errors


def dedupe_by_source_url(products: Sequence[NormalizedProduct]) -> List[NormalizedProduct]:
    """Drop later products whose source_url was already seen.

    The first occurrence wins and the input order is kept.
    """
    seen = set()
    unique: List[NormalizedProduct] = []
    for product in products:
        if product.source_url in seen:
            continue
        seen.add(product.source_url)
        unique.append(product)
    return unique


class ImportService:
    """Imports normalized products into a ProductStore."""

    def __init__(
        self,
        store: ProductStore,
        batch_size: int = settings.IMPORT_BATCH_SIZE,
        progress_every: int = settings.IMPORT_PROGRESS_EVERY,
        conflict_retries: int = settings.IMPORT_CONFLICT_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.batch_size = max(1, batch_size)
        self.progress_every = max(1, progress_every)
        self.conflict_retries = conflict_retries
        self._sleep = sleep
        self.logger = logger.bind(service="import_service")

    async def _upsert_one(self, product: NormalizedProduct) -> UpsertResult:
        return await with_retry(
            lambda: self.store.upsert(product),
            max_attempts=self.conflict_retries + 1,
            backoff_fn=short_backoff,
            retry_on=(UpsertConflictError,),
            sleep=self._sleep,
        )

    async def import_products(self, products: Sequence[NormalizedProduct]) -> ImportSummary:
        """Deduplicate and upsert ``products``.

        Args:
            products: Normalized products from every source of a run

        Returns:
            ImportSummary with inserted/updated/errors counts

        Raises:
            StoreUnavailableError: If the store does not answer the initial ping
        """
        await self.store.ping()

        unique = dedupe_by_source_url(products)
        if len(unique) < len(products):
            self.logger.info("duplicates_dropped", count=len(products) - len(unique))

        summary = ImportSummary()
        total = len(unique)
        self.logger.info("import_started", total=total, batch_size=self.batch_size)

        for start in range(0, total, self.batch_size):
            batch = unique[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._upsert_one(p) for p in batch),
                return_exceptions=True,
            )

            for product, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    summary.errors += 1
                    self.logger.warning(
                        "upsert_failed",
                        source_url=product.source_url,
                        error=str(result),
                        error_type=type(result).__name__,
                    )
                elif result.action == "inserted":
                    summary.inserted += 1
                else:
                    summary.updated += 1

            done = start + len(batch)
            if done == total or done // self.progress_every > start // self.progress_every:
                self.logger.info(
                    "import_progress",
                    done=done,
                    total=total,
                    inserted=summary.inserted,
                    updated=summary.updated,
                    errors=summary.errors,
                )

        self.logger.info(
            "import_complete",
            inserted=summary.inserted,
            updated=summary.updated,
            errors=summary.errors,
        )
        return summary
