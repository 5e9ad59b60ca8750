"""Base source adapter interface and the normalized data model.

All source adapters inherit from BaseAdapter and implement discover(),
fetch_detail() and normalize(). The shared scrape() template drives them
through the adaptive fetcher.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import structlog

from shopfeed.config import settings
from shopfeed.core.exceptions import ScraperError


VALID_GENDERS = ("men", "women", "unisex")
VALID_CONDITIONS = ("new", "used", "like_new")


@dataclass
class Variant:
    """One purchasable variant (size/color combination) of a product."""

    id: str
    title: str
    available: bool = True
    price: Optional[Decimal] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title, "available": self.available}
        if self.price is not None:
            data["price"] = str(self.price)
        for key in ("option1", "option2", "option3"):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data


@dataclass
class ProductOption:
    name: str
    values: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "values": list(self.values)}


@dataclass
class NormalizedProduct:
    """Normalized product returned by every adapter.

    ``source_url`` is the identity key used for dedup and upsert.
    """

    name: str
    description: str
    brand: str
    price: Decimal
    category: str
    source_url: str
    source_platform: str
    condition: str = "new"
    original_price: Optional[Decimal] = None
    material: Optional[str] = None
    gender: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: Optional[List[str]] = None
    variants: Optional[List[Variant]] = None
    options: Optional[List[ProductOption]] = None
    sizes: Optional[List[str]] = None
    size: Optional[str] = None
    color_group_id: Optional[str] = None
    color_name: Optional[str] = None
    color_hex: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.name:
            raise ValueError("name is required")
        if not self.source_url:
            raise ValueError("source_url is required")
        if self.price is None or self.price <= 0:
            raise ValueError("price must be a positive Decimal")
        if self.original_price is not None and self.original_price <= self.price:
            raise ValueError("original_price must exceed price")
        if self.gender is not None and self.gender not in VALID_GENDERS:
            raise ValueError(f"Invalid gender: {self.gender}")
        if self.condition not in VALID_CONDITIONS:
            raise ValueError(f"Invalid condition: {self.condition}")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the store's camelCase wire shape, omitting empty fields."""
        data: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "price": str(self.price),
            "originalPrice": str(self.original_price) if self.original_price is not None else None,
            "material": self.material,
            "size": self.size,
            "sizes": self.sizes,
            "variants": [v.to_dict() for v in self.variants] if self.variants else None,
            "options": [o.to_dict() for o in self.options] if self.options else None,
            "colorGroupId": self.color_group_id,
            "colorName": self.color_name,
            "colorHex": self.color_hex,
            "category": self.category,
            "gender": self.gender,
            "condition": self.condition,
            "sourceUrl": self.source_url,
            "sourcePlatform": self.source_platform,
            "imageUrl": self.image_url,
            "imageUrls": self.image_urls,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ScraperResult:
    """Products and per-item errors collected from one source run."""

    source: str
    products: List[NormalizedProduct] = field(default_factory=list)
    scraped_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    errors: List[str] = field(default_factory=list)


@dataclass
class ItemHandle:
    """Reference to one product found during discovery.

    ``data`` carries the item body when the discovery response already
    contained it (paginated listings, rendered category cards).
    """

    key: str
    url: str
    category: Optional[str] = None
    gender: Optional[str] = None
    data: Optional[Any] = None


@dataclass(frozen=True)
class CategoryPage:
    """A category listing page and the category/gender it implies."""

    path: str
    category: str
    gender: Optional[str] = None


@dataclass
class ShopifyProductPayload:
    """Shopify-style product JSON, optionally merged with page availability."""

    product: Dict[str, Any]
    url: str
    availability: Optional[Dict[str, bool]] = None
    color_group_id: Optional[str] = None
    category: Optional[str] = None
    gender: Optional[str] = None


@dataclass
class ProductCardPayload:
    """Product card scraped from a category page."""

    name: str
    price_text: str
    url: str
    image_url: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    gender: Optional[str] = None
    condition: str = "new"


@dataclass
class ListingPayload:
    """Listing object from a marketplace or retailer JSON API."""

    listing: Dict[str, Any]
    url: str
    category: Optional[str] = None
    gender: Optional[str] = None


RawPayload = Union[ShopifyProductPayload, ProductCardPayload, ListingPayload]


class BaseAdapter(ABC):
    """Abstract base class for all source adapters.

    Subclasses set the class attributes and implement discover(),
    fetch_detail() and normalize(). Network access goes through
    ``self.fetcher`` (and ``self.browser`` for rendered sources), both
    injected by the factory.
    """

    shop_slug: str = ""  # Registry name, also the --<source> CLI flag
    shop_name: str = ""  # Display name stored as source_platform
    adapter_type: str = ""  # 'api', 'html' or 'browser'
    requires_browser: bool = False
    default_category: Optional[str] = None
    default_gender: Optional[str] = None
    progress_every: int = settings.SCRAPE_PROGRESS_EVERY

    def __init__(self):
        """Initialize the adapter with dependency injection points."""
        self.fetcher = None  # AdaptiveFetcher, injected by factory
        self.browser = None  # BrowserManager, injected by factory for browser adapters
        self.logger = structlog.get_logger(__name__).bind(adapter=self.shop_slug)

    @abstractmethod
    async def discover(self, max_products: int) -> List[ItemHandle]:
        """Find product handles for this source.

        Args:
            max_products: Upper bound on handles worth returning

        Returns:
            List of ItemHandle, possibly carrying prefetched data

        Raises:
            ScraperError: If the source cannot be enumerated at all
        """

    @abstractmethod
    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        """Fetch the raw payload for one handle.

        Returns:
            RawPayload, or None if the item no longer exists
        """

    @abstractmethod
    def normalize(self, payload: RawPayload) -> Optional[NormalizedProduct]:
        """Convert a raw payload into a NormalizedProduct.

        Returns:
            NormalizedProduct, or None when the item fails validation
            (missing name, non-positive price)
        """

    async def scrape(
        self,
        max_products: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ScraperResult:
        """Discover, fetch and normalize up to ``max_products`` items.

        Fetch failures and parse errors are recorded in the result's
        errors and never abort the run. Discovery failures propagate.
        """
        if self.fetcher is None:
            raise ScraperError(self.shop_slug, "fetcher not injected")

        result = ScraperResult(source=self.shop_slug)
        handles = (await self.discover(max_products))[:max_products]
        self.logger.info("handles_discovered", count=len(handles), max_products=max_products)

        total = len(handles)
        completed = 0
        valid = 0

        async def process(handle: ItemHandle) -> Optional[NormalizedProduct]:
            nonlocal completed, valid
            try:
                payload = await self.fetch_detail(handle)
            finally:
                completed += 1
                if completed % self.progress_every == 0 or completed == total:
                    self.logger.info("scrape_progress", fetched=completed, total=total, valid=valid)

            if payload is None:
                result.errors.append(f"Failed to fetch: {handle.key}")
                return None

            try:
                product = self.normalize(payload)
            except Exception as e:
                self.logger.warning("normalize_failed", key=handle.key, error=str(e))
                result.errors.append(f"Failed to parse {handle.key}: {e}")
                return None

            if product is not None:
                valid += 1
            return product

        outcomes = await self.fetcher.run_batched(handles, process, cancel_event=cancel_event)

        for outcome in outcomes:
            if outcome.ok:
                if outcome.value is not None:
                    result.products.append(outcome.value)
                continue
            self.logger.warning(
                "item_fetch_failed",
                key=outcome.item.key,
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )
            result.errors.append(f"{outcome.item.key}: {outcome.error}")

        self.logger.info(
            "scrape_complete",
            products=len(result.products),
            errors=len(result.errors),
            concurrency=self.fetcher.state.concurrency,
        )
        return result

    async def cleanup(self) -> None:
        """Release per-run resources. Browser adapters close their context."""
        return None


class BaseAPIAdapter(BaseAdapter):
    """Base class for sources read through JSON endpoints."""

    adapter_type = "api"


class BaseHTMLAdapter(BaseAdapter):
    """Base class for sources read from static HTML pages."""

    adapter_type = "html"


class BaseBrowserAdapter(BaseAdapter):
    """Base class for sources that need a rendered page (Playwright).

    Category pages are loaded in a browser context owned by this adapter;
    product cards come back as ProductCardPayload handles so fetch_detail
    needs no further navigation.
    """

    adapter_type = "browser"
    requires_browser = True
    wait_selector: Optional[str] = None

    def __init__(self):
        super().__init__()
        self.browser_context = None

    async def _render(self, url: str, wait_selector: Optional[str] = None, scroll: bool = True) -> str:
        """Load a URL in the browser and return the rendered HTML.

        Args:
            url: Page to load
            wait_selector: Optional CSS selector to wait for before reading HTML
            scroll: Scroll to the bottom once to trigger lazy-loaded tiles

        Raises:
            ScraperError: If no browser was injected
        """
        if self.browser is None:
            raise ScraperError(self.shop_slug, "browser not injected")
        if self.browser_context is None:
            self.browser_context = await self.browser.get_context(self.shop_slug)

        page = await self.browser_context.new_page()
        try:
            self.logger.info("rendering_url", url=url)
            await page.goto(url, wait_until="domcontentloaded", timeout=settings.BROWSER_NAV_TIMEOUT_MS)
            selector = wait_selector or self.wait_selector
            if selector:
                await page.wait_for_selector(selector, timeout=10000)
            if scroll:
                await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
                await page.wait_for_timeout(1500)
            return await page.content()
        finally:
            await page.close()

    async def fetch_detail(self, handle: ItemHandle) -> Optional[RawPayload]:
        return handle.data

    async def cleanup(self) -> None:
        """Close this adapter's browser context."""
        if self.browser_context is not None and self.browser is not None:
            await self.browser.close_context(self.shop_slug)
        self.browser_context = None
