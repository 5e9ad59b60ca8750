"""Tests for the adaptive fetcher, AIMD state and the retry policy."""

import asyncio

import httpx
import pytest

from shopfeed.core.exceptions import FetchError, RateLimitedError, TransientFetchError, UpsertConflictError
from shopfeed.scrapers.utils.fetcher import AdaptiveFetcher
from shopfeed.scrapers.utils.rate_limiter import MAX_CONCURRENCY, MIN_CONCURRENCY, RateLimitState
from shopfeed.scrapers.utils.retry import exponential_backoff, with_retry


def make_fetcher(handler, sleep, **kwargs) -> AdaptiveFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("jitter_max", 0)
    kwargs.setdefault("backoff_pause", 3.0)
    kwargs.setdefault("max_retries", 3)
    return AdaptiveFetcher(client, RateLimitState(), name="test", sleep=sleep, **kwargs)


class TestRateLimitState:
    """AIMD concurrency control."""

    def test_starts_at_max(self):
        state = RateLimitState()
        assert state.concurrency == MAX_CONCURRENCY == 5
        assert state.consecutive_errors == 0

    def test_decreases_to_floor(self):
        state = RateLimitState()
        for _ in range(10):
            assert state.record_batch(5, 5) is True
        assert state.concurrency == MIN_CONCURRENCY == 2
        assert state.consecutive_errors == 10

    def test_recovers_to_max(self):
        state = RateLimitState(concurrency=2, consecutive_errors=4)
        state.record_batch(2, 0)
        assert state.concurrency == 3
        assert state.consecutive_errors == 0
        for _ in range(10):
            state.record_batch(3, 0)
        assert state.concurrency == 5

    def test_partial_failure_keeps_size(self):
        state = RateLimitState(concurrency=4)
        assert state.record_batch(4, 2) is False
        assert state.concurrency == 4
        assert state.consecutive_errors == 1

    def test_empty_batch_is_ignored(self):
        state = RateLimitState()
        assert state.record_batch(0, 0) is False
        assert state.concurrency == 5


class TestFetch:
    """Single-request behavior and error mapping."""

    async def test_success_rotates_user_agent_header(self, no_sleep):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["User-Agent"])
            return httpx.Response(200, json={"ok": True})

        fetcher = make_fetcher(handler, no_sleep)
        assert await fetcher.fetch_json("https://shop.example.com/products.json") == {"ok": True}
        assert seen and seen[0].startswith("Mozilla/5.0")
        assert no_sleep.calls == []

    async def test_429_backoff_strictly_increasing_then_raises(self, no_sleep):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(429)

        fetcher = make_fetcher(handler, no_sleep)
        with pytest.raises(RateLimitedError):
            await fetcher.fetch("https://shop.example.com/products/tee.json")

        assert len(requests) == 4
        assert len(no_sleep.calls) == 3
        assert no_sleep.calls[0] < no_sleep.calls[1] < no_sleep.calls[2]
        assert 2 <= no_sleep.calls[0] < 3
        assert 8 <= no_sleep.calls[2] < 9

    async def test_429_then_success(self, no_sleep):
        responses = iter([httpx.Response(429), httpx.Response(429), httpx.Response(200, text="ok")])

        fetcher = make_fetcher(lambda request: next(responses), no_sleep)
        response = await fetcher.fetch("https://shop.example.com/")

        assert response.text == "ok"
        assert len(no_sleep.calls) == 2

    async def test_server_error_is_transient(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(503)

        fetcher = make_fetcher(handler, no_sleep, max_retries=1)
        with pytest.raises(TransientFetchError) as exc_info:
            await fetcher.fetch("https://shop.example.com/")

        assert exc_info.value.status_code == 503
        assert len(calls) == 2

    async def test_timeout_is_transient(self, no_sleep):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        fetcher = make_fetcher(handler, no_sleep, max_retries=0)
        with pytest.raises(TransientFetchError):
            await fetcher.fetch("https://shop.example.com/")

    async def test_client_error_not_retried(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(404)

        fetcher = make_fetcher(handler, no_sleep)
        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://shop.example.com/products/gone.json")

        assert exc_info.value.status_code == 404
        assert not isinstance(exc_info.value, (RateLimitedError, TransientFetchError))
        assert len(calls) == 1
        assert no_sleep.calls == []


class TestRunBatched:
    """Batching, AIMD feedback and cancellation."""

    async def test_all_failures_drive_concurrency_to_floor(self, no_sleep):
        fetcher = make_fetcher(lambda r: httpx.Response(200), no_sleep)
        batch_sizes = []

        async def worker(item):
            raise RateLimitedError(f"https://shop.example.com/{item}")

        original_record = fetcher.state.record_batch

        def recording(size, failures):
            batch_sizes.append(size)
            return original_record(size, failures)

        fetcher.state.record_batch = recording
        outcomes = await fetcher.run_batched(list(range(20)), worker)

        assert batch_sizes == [5, 4, 3, 2, 2, 2, 2]
        assert fetcher.state.concurrency == 2
        assert len(outcomes) == 20
        assert all(not o.ok for o in outcomes)
        # Pause after every tripped batch except the last
        assert no_sleep.calls == [3.0] * 6

    async def test_recovers_after_errors_stop(self, no_sleep):
        fetcher = make_fetcher(lambda r: httpx.Response(200), no_sleep)
        fetcher.state.concurrency = 2
        fetcher.state.consecutive_errors = 3

        async def worker(item):
            return item * 2

        outcomes = await fetcher.run_batched(list(range(12)), worker)

        assert [o.value for o in outcomes] == [i * 2 for i in range(12)]
        assert fetcher.state.concurrency == 5
        assert fetcher.state.consecutive_errors == 0
        assert no_sleep.calls == []

    async def test_failure_does_not_abort_batch(self, no_sleep):
        fetcher = make_fetcher(lambda r: httpx.Response(200), no_sleep)

        async def worker(item):
            if item == 2:
                raise ValueError("bad item")
            return item

        outcomes = await fetcher.run_batched([1, 2, 3], worker)

        assert [o.ok for o in outcomes] == [True, False, True]
        assert isinstance(outcomes[1].error, ValueError)
        assert fetcher.state.concurrency == 5

    async def test_cancel_stops_new_batches(self, no_sleep):
        fetcher = make_fetcher(lambda r: httpx.Response(200), no_sleep)
        cancel_event = asyncio.Event()
        processed = []

        async def worker(item):
            processed.append(item)
            cancel_event.set()
            return item

        outcomes = await fetcher.run_batched(list(range(12)), worker, cancel_event=cancel_event)

        # The in-flight batch completes, nothing after it starts
        assert processed == [0, 1, 2, 3, 4]
        assert len(outcomes) == 5


class TestWithRetry:

    def test_exponential_backoff_bounds(self):
        for attempt, base in enumerate([2, 4, 8]):
            wait = exponential_backoff(attempt)
            assert base <= wait < base + 1

    async def test_retries_only_listed_errors(self, no_sleep):
        calls = []

        async def operation():
            calls.append(1)
            raise ValueError("not retryable")

        with pytest.raises(ValueError):
            await with_retry(operation, max_attempts=3, retry_on=(UpsertConflictError,), sleep=no_sleep)
        assert len(calls) == 1

    async def test_succeeds_after_conflict(self, no_sleep):
        attempts = iter([UpsertConflictError("https://x"), "done"])

        async def operation():
            result = next(attempts)
            if isinstance(result, Exception):
                raise result
            return result

        result = await with_retry(
            operation,
            max_attempts=3,
            backoff_fn=lambda attempt: 0.5,
            retry_on=(UpsertConflictError,),
            sleep=no_sleep,
        )
        assert result == "done"
        assert no_sleep.calls == [0.5]

    async def test_lambda_operation_is_awaited_and_retried(self, no_sleep):
        """A lambda returning a coroutine is awaited on every attempt."""
        calls = []

        async def upsert(url):
            calls.append(url)
            if len(calls) < 3:
                raise UpsertConflictError(url)
            return url.upper()

        result = await with_retry(
            lambda: upsert("https://x"),
            max_attempts=4,
            backoff_fn=lambda attempt: float(attempt),
            retry_on=(UpsertConflictError,),
            sleep=no_sleep,
        )

        assert result == "HTTPS://X"
        assert len(calls) == 3
        assert no_sleep.calls == [0.0, 1.0]
