"""Custom exception classes for the ingestion pipeline."""

from typing import Optional


class ShopfeedException(Exception):
    """Base exception for all shopfeed errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ScraperError(ShopfeedException):
    """Raised when a source adapter cannot produce results."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"Scraper error for {platform}: {message}")


class FetchError(ShopfeedException):
    """Raised when a request returns a non-retryable error status."""

    def __init__(self, url: str, status_code: Optional[int] = None, message: Optional[str] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code} for {url}")


class RateLimitedError(FetchError):
    """Raised when a source answers with HTTP 429."""

    def __init__(self, url: str):
        super().__init__(url, 429, f"Rate limited by {url}")


class TransientFetchError(FetchError):
    """Raised on timeouts, connection failures and 5xx responses."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        super().__init__(url, status_code, f"Transient failure for {url}: {reason}")


class BrowserUnavailableError(ShopfeedException):
    """Raised when the headless browser cannot be launched."""

    def __init__(self, reason: str):
        super().__init__(f"Browser unavailable: {reason}")


class StoreError(ShopfeedException):
    """Base class for product store failures."""


class StoreUnavailableError(StoreError):
    """Raised when the product store cannot be reached at all."""

    def __init__(self, reason: str):
        super().__init__(f"Product store unreachable: {reason}")


class UpsertConflictError(StoreError):
    """Raised when a concurrent insert claimed the same source_url first."""

    def __init__(self, source_url: str):
        self.source_url = source_url
        super().__init__(f"Concurrent upsert conflict for {source_url}")
