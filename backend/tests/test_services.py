"""Test suite for the product store, the importer and the orchestrator.

Tests cover:
- ProductService upsert, price history and reachability
- ImportService dedup, batching, conflict retry and error counting
- ScraperService source isolation and cancellation
"""

import asyncio
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from conftest import make_product
from shopfeed.core.exceptions import ScraperError, StoreUnavailableError, UpsertConflictError
from shopfeed.models import Product
from shopfeed.scrapers.base import (
    BaseAPIAdapter,
    ItemHandle,
    ListingPayload,
    NormalizedProduct,
    ProductOption,
    RawPayload,
    Variant,
)
from shopfeed.scrapers.factory import AdapterFactory
from shopfeed.scrapers.scraper_service import ScraperService
from shopfeed.services.import_service import ImportService, dedupe_by_source_url
from shopfeed.services.product_service import ProductService, UpsertResult


# ============================================================================
# PRODUCT SERVICE
# ============================================================================

class TestProductService:
    """Test ProductService against an in-memory SQLite store."""

    async def test_insert_seeds_price_history(self, session_factory):
        """A new product is inserted with one price-history row."""
        service = ProductService(session_factory)
        product = make_product(price="24.99", original_price=Decimal("39.99"))

        result = await service.upsert(product)

        assert result.action == "inserted"
        history = await service.get_price_history(product.source_url)
        assert [h.price for h in history] == [Decimal("24.99")]
        assert history[0].source == "Example"

    async def test_resubmit_unchanged_is_idempotent(self, session_factory):
        """Re-importing the same product updates in place without new history."""
        service = ProductService(session_factory)
        product = make_product()

        first = await service.upsert(product)
        second = await service.upsert(product)

        assert second.action == "updated"
        assert second.id == first.id
        assert await service.count() == 1
        assert len(await service.get_price_history(product.source_url)) == 1

    async def test_price_change_appends_history(self, session_factory):
        """Only a changed price adds a history row; display fields are patched."""
        service = ProductService(session_factory)
        url = "https://shop.example.com/products/wool-coat"

        await service.upsert(make_product(source_url=url, name="Wool Coat", price="200.00"))
        await service.upsert(make_product(source_url=url, name="Wool Coat (Camel)", price="150.00"))

        history = await service.get_price_history(url)
        assert [h.price for h in history] == [Decimal("200.00"), Decimal("150.00")]

        async with session_factory() as session:
            stored = (await session.execute(select(Product).where(Product.source_url == url))).scalar_one()
        assert stored.name == "Wool Coat (Camel)"
        assert stored.price == Decimal("150.00")
        assert stored.last_scraped_at is not None

    async def test_variants_and_options_stored_as_json(self, session_factory):
        service = ProductService(session_factory)
        product = make_product(
            variants=[Variant(id="1", title="S", available=False, price=Decimal("30.00"))],
            options=[ProductOption(name="Size", values=["S"])],
            sizes=["S"],
        )
        await service.upsert(product)

        async with session_factory() as session:
            stored = (await session.execute(select(Product))).scalar_one()
        assert stored.variants == [{"id": "1", "title": "S", "available": False, "price": "30.00"}]
        assert stored.options == [{"name": "Size", "values": ["S"]}]

    async def test_ping(self, session_factory):
        await ProductService(session_factory).ping()

    async def test_ping_unreachable_store(self, tmp_path):
        """A store that cannot be opened raises StoreUnavailableError."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/store.db")
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        with pytest.raises(StoreUnavailableError):
            await ProductService(factory).ping()

        await engine.dispose()


# ============================================================================
# IMPORT SERVICE
# ============================================================================

class FakeStore:
    """In-memory store recording upserts and in-flight concurrency."""

    def __init__(self, fail_urls=(), conflicts=0):
        self.fail_urls = set(fail_urls)
        self.conflicts = conflicts
        self.seen = {}
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.ping = AsyncMock()

    async def upsert(self, product: NormalizedProduct) -> UpsertResult:
        self.calls.append(product.source_url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if product.source_url in self.fail_urls:
                raise RuntimeError("constraint violated")
            if self.conflicts:
                self.conflicts -= 1
                raise UpsertConflictError(product.source_url)
            action = "updated" if product.source_url in self.seen else "inserted"
            self.seen[product.source_url] = product
            return UpsertResult(id=None, action=action)
        finally:
            self.in_flight -= 1


def products(count: int) -> List[NormalizedProduct]:
    return [make_product(source_url=f"https://shop.example.com/products/item-{i}") for i in range(count)]


class TestDedupe:

    def test_keeps_first_occurrence_in_order(self):
        a1 = make_product(source_url="https://a.com/1", name="First")
        b = make_product(source_url="https://a.com/2")
        a2 = make_product(source_url="https://a.com/1", name="Second")

        unique = dedupe_by_source_url([a1, b, a2])

        assert unique == [a1, b]
        assert unique[0].name == "First"


class TestImportService:

    async def test_counts_inserted_then_updated(self, no_sleep):
        store = FakeStore()
        importer = ImportService(store, batch_size=3, sleep=no_sleep)

        first = await importer.import_products(products(5))
        second = await importer.import_products(products(5))

        assert (first.inserted, first.updated, first.errors) == (5, 0, 0)
        assert (second.inserted, second.updated, second.errors) == (0, 5, 0)

    async def test_duplicates_upserted_once(self, no_sleep):
        store = FakeStore()
        dupes = products(3) + [make_product(source_url="https://shop.example.com/products/item-0", name="Later")]

        summary = await ImportService(store, sleep=no_sleep).import_products(dupes)

        assert summary.total == 3
        assert store.calls.count("https://shop.example.com/products/item-0") == 1
        assert store.seen["https://shop.example.com/products/item-0"].name == "Organic Cotton Tee"

    async def test_batches_never_overlap(self, no_sleep):
        store = FakeStore()
        await ImportService(store, batch_size=4, sleep=no_sleep).import_products(products(10))

        assert store.max_in_flight <= 4
        assert len(store.calls) == 10

    async def test_errors_counted_and_import_continues(self, no_sleep):
        store = FakeStore(fail_urls={"https://shop.example.com/products/item-1"})

        summary = await ImportService(store, batch_size=2, sleep=no_sleep).import_products(products(4))

        assert summary.inserted == 3
        assert summary.errors == 1

    async def test_conflict_is_retried(self, no_sleep):
        store = FakeStore(conflicts=1)

        summary = await ImportService(store, conflict_retries=2, sleep=no_sleep).import_products(products(1))

        assert summary.inserted == 1
        assert summary.errors == 0
        assert len(store.calls) == 2
        assert len(no_sleep.calls) == 1

    async def test_persistent_conflict_counts_as_error(self, no_sleep):
        store = FakeStore(conflicts=10)

        summary = await ImportService(store, conflict_retries=2, sleep=no_sleep).import_products(products(1))

        assert summary.errors == 1
        assert len(store.calls) == 3

    async def test_unreachable_store_is_fatal(self, no_sleep):
        store = FakeStore()
        store.ping.side_effect = StoreUnavailableError("connection refused")

        with pytest.raises(StoreUnavailableError):
            await ImportService(store, sleep=no_sleep).import_products(products(2))
        assert store.calls == []

    async def test_idempotent_against_real_store(self, session_factory, no_sleep):
        """Importing the same products twice leaves the store unchanged."""
        store = ProductService(session_factory)
        importer = ImportService(store, batch_size=1, sleep=no_sleep)
        batch = products(25)

        first = await importer.import_products(batch)
        second = await importer.import_products(batch)

        assert first.inserted == 25
        assert second.updated == 25
        assert await store.count() == 25
        assert len(await store.get_price_history(batch[0].source_url)) == 1


# ============================================================================
# SCRAPER SERVICE
# ============================================================================

class StaticAdapter(BaseAPIAdapter):
    """Adapter serving a fixed set of listings without network access."""

    shop_slug = "static"
    shop_name = "Static"
    names = ["Linen Shirt", "Wool Coat"]
    cleaned_up = []

    async def discover(self, max_products: int) -> List[ItemHandle]:
        return [
            ItemHandle(key=name, url=f"https://static.example.com/{i}", data={"name": name})
            for i, name in enumerate(self.names)
        ]

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return ListingPayload(listing=handle.data, url=handle.url)

    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        return make_product(source_url=payload.url, name=payload.listing["name"], source_platform=self.shop_name)

    async def cleanup(self) -> None:
        StaticAdapter.cleaned_up.append(self.shop_slug)


class BrokenAdapter(StaticAdapter):
    shop_slug = "broken"

    async def discover(self, max_products: int) -> List[ItemHandle]:
        raise ScraperError(self.shop_slug, "sitemap unreachable")


class TestScraperService:

    @pytest.fixture
    def factory(self):
        StaticAdapter.cleaned_up = []
        factory = AdapterFactory()
        factory.register_adapter("static", StaticAdapter)
        factory.register_adapter("broken", BrokenAdapter)
        return factory

    async def test_failing_source_is_isolated(self, factory):
        async with httpx.AsyncClient() as client:
            service = ScraperService(client, factory=factory)
            result = await service.run(["broken", "static", "unknown"], max_products_per_source=10)

        assert [p.name for p in result.products] == ["Linen Shirt", "Wool Coat"]
        assert result.summary() == {"broken": 0, "static": 2}
        assert "sitemap unreachable" in result.per_source_results["broken"].errors[0]
        assert "unknown" not in result.per_source_results
        assert StaticAdapter.cleaned_up == ["broken", "static"]

    async def test_cancelled_run_starts_no_source(self, factory):
        cancel_event = asyncio.Event()
        cancel_event.set()

        async with httpx.AsyncClient() as client:
            result = await ScraperService(client, factory=factory).run(["static"], 10, cancel_event=cancel_event)

        assert result.products == []
        assert result.per_source_results == {}

    async def test_fresh_fetcher_per_adapter(self, factory):
        async with httpx.AsyncClient() as client:
            first = factory.create_adapter("static", client)
            second = factory.create_adapter("static", client)

        assert first.fetcher is not second.fetcher
        assert first.fetcher.state is not second.fetcher.state
        assert factory.create_adapter("missing", client) is None
