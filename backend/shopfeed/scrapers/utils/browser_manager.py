"""Shared Chromium for rendered sources.

One browser is launched per run. Each browser adapter gets its own context,
keyed by shop slug, with a Chrome user agent, the stealth init script and
image/font requests aborted (tiles are parsed from markup, never rendered).
"""

import asyncio
from typing import Dict, Optional

import structlog
from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Playwright, async_playwright

from shopfeed.config import settings
from shopfeed.core.exceptions import BrowserUnavailableError
from shopfeed.scrapers.utils.user_agents import get_chrome_user_agent

logger = structlog.get_logger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
]

BLOCKED_RESOURCES = "**/*.{png,jpg,jpeg,gif,webp,svg,woff,woff2,ttf,eot}"

# Masks navigator.webdriver and friends
STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = { runtime: {} };
"""


class BrowserManager:
    """Owns the Playwright driver, the browser and one context per source."""

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._contexts: Dict[str, BrowserContext] = {}
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Launch Chromium if it is not running yet.

        Raises:
            BrowserUnavailableError: Driver or browser failed to start
        """
        async with self._lock:
            if self._browser is not None:
                return
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            except PlaywrightError as e:
                await self._stop_driver()
                raise BrowserUnavailableError(str(e)) from e
            logger.info("browser_started", headless=self.headless)

    async def stop(self) -> None:
        """Close every source context, then the browser and the driver."""
        async with self._lock:
            for shop_slug in list(self._contexts):
                await self._close(shop_slug)
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            await self._stop_driver()
            logger.info("browser_stopped")

    async def get_context(self, shop_slug: str) -> BrowserContext:
        """The context for ``shop_slug``, created on first use."""
        context = self._contexts.get(shop_slug)
        if context is not None:
            return context

        await self.start()
        context = await self._browser.new_context(
            user_agent=get_chrome_user_agent(),
            viewport={"width": 1920, "height": 1080},
            locale="en-US",
            timezone_id="America/New_York",
        )
        await context.add_init_script(STEALTH_JS)
        await context.route(BLOCKED_RESOURCES, lambda route: route.abort())

        self._contexts[shop_slug] = context
        logger.info("browser_context_created", shop_slug=shop_slug)
        return context

    async def close_context(self, shop_slug: str) -> None:
        await self._close(shop_slug)

    async def _close(self, shop_slug: str) -> None:
        context = self._contexts.pop(shop_slug, None)
        if context is None:
            return
        try:
            await context.close()
        except PlaywrightError as e:
            logger.debug("browser_context_close_failed", shop_slug=shop_slug, error=str(e))

    async def _stop_driver(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


_browser_manager: Optional[BrowserManager] = None


def get_browser_manager() -> BrowserManager:
    """Process-wide BrowserManager, headless per settings."""
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager(headless=settings.BROWSER_HEADLESS)
    return _browser_manager
