"""Adaptive rate-limited HTTP fetcher.

Requests go out in batches sized by a RateLimitState. Each batch is awaited
in full before the next one starts, and the batch error rate drives the
concurrency up or down. 429s, timeouts and 5xx responses are retried with
exponential backoff through with_retry.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import httpx
import structlog

from shopfeed.config import settings
from shopfeed.core.exceptions import FetchError, RateLimitedError, TransientFetchError
from shopfeed.scrapers.utils.rate_limiter import RateLimitState
from shopfeed.scrapers.utils.retry import exponential_backoff, with_retry
from shopfeed.scrapers.utils.user_agents import get_random_user_agent


logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class BatchOutcome(Generic[T, R]):
    """Settled result of one item in a batched run."""

    item: T
    value: Optional[R] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AdaptiveFetcher:
    """HTTP client wrapper with UA rotation, jitter, retry and AIMD batching.

    One instance is created per adapter run; its RateLimitState is never
    shared with another run.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        state: Optional[RateLimitState] = None,
        *,
        name: str = "",
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        jitter_max: float = settings.FETCH_JITTER_MAX_SECONDS,
        backoff_pause: float = settings.FETCH_BACKOFF_PAUSE_SECONDS,
        max_retries: int = settings.RATE_LIMIT_MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.state = state or RateLimitState()
        self.timeout = timeout
        self.jitter_max = jitter_max
        self.backoff_pause = backoff_pause
        self.max_retries = max_retries
        self._sleep = sleep
        self.logger = logger.bind(fetcher=name)

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """GET a URL with retry on 429 and transient failures.

        Args:
            url: Absolute URL to request
            headers: Extra headers merged over the defaults
            params: Optional query parameters

        Returns:
            The successful (2xx/3xx) response

        Raises:
            RateLimitedError: Still rate limited after the retry budget
            TransientFetchError: Still failing after the retry budget
            FetchError: Any other 4xx status (not retried)
        """
        return await with_retry(
            lambda: self._fetch_once(url, headers, params),
            max_attempts=self.max_retries + 1,
            backoff_fn=exponential_backoff,
            retry_on=(RateLimitedError, TransientFetchError),
            sleep=self._sleep,
        )

    async def fetch_json(self, url: str, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None) -> Any:
        merged = {"Accept": "application/json"}
        if headers:
            merged.update(headers)
        response = await self.fetch(url, merged, params)
        return response.json()

    async def fetch_text(self, url: str, headers: Optional[Dict[str, str]] = None, params: Optional[Dict[str, Any]] = None) -> str:
        response = await self.fetch(url, headers, params)
        return response.text

    async def _fetch_once(
        self,
        url: str,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        if self.jitter_max > 0:
            await self._sleep(random.uniform(0, self.jitter_max))

        request_headers = {**DEFAULT_HEADERS, "User-Agent": get_random_user_agent()}
        if headers:
            request_headers.update(headers)

        try:
            response = await self.client.get(
                url,
                headers=request_headers,
                params=params,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            raise TransientFetchError(url, "timeout") from e
        except httpx.TransportError as e:
            raise TransientFetchError(url, type(e).__name__) from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError(url)
        if status >= 500:
            raise TransientFetchError(url, f"HTTP {status}", status_code=status)
        if status >= 400:
            raise FetchError(url, status)
        return response

    async def run_batched(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[BatchOutcome]:
        """Run ``worker`` over ``items`` in AIMD-sized batches.

        A worker exception counts as a failure for concurrency control and
        is returned as that item's error; it never aborts the batch. When
        ``cancel_event`` is set no further batch is started, but the batch
        already in flight runs to completion.

        Returns:
            One outcome per processed item, in input order
        """
        outcomes: List[BatchOutcome] = []
        index = 0
        total = len(items)

        while index < total:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.warning("fetch_cancelled", processed=index, remaining=total - index)
                break

            batch = items[index:index + self.state.concurrency]
            index += len(batch)

            results = await asyncio.gather(
                *(worker(item) for item in batch),
                return_exceptions=True,
            )

            failures = 0
            for item, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    failures += 1
                    outcomes.append(BatchOutcome(item=item, error=result))
                else:
                    outcomes.append(BatchOutcome(item=item, value=result))

            tripped = self.state.record_batch(len(batch), failures)
            self.logger.debug(
                "batch_settled",
                size=len(batch),
                failures=failures,
                concurrency=self.state.concurrency,
                consecutive_errors=self.state.consecutive_errors,
            )
            if tripped:
                self.logger.warning(
                    "batch_backoff",
                    failures=failures,
                    size=len(batch),
                    concurrency=self.state.concurrency,
                    pause_seconds=self.backoff_pause,
                )
                if index < total:
                    await self._sleep(self.backoff_pause)

        return outcomes
