"""Scraper utilities for fetching, rate limiting and data normalization."""

from .rate_limiter import MAX_CONCURRENCY, MIN_CONCURRENCY, RateLimitState
from .fetcher import AdaptiveFetcher, BatchOutcome
from .user_agents import USER_AGENTS, get_chrome_user_agent, get_random_user_agent
from .normalizer import (
    CategoryClassifier,
    PriceNormalizer,
    get_color_hex,
    infer_gender,
    map_condition,
    normalize_url,
)
from .retry import exponential_backoff, short_backoff, with_retry


__all__ = [
    # Rate limiting
    "RateLimitState",
    "MAX_CONCURRENCY",
    "MIN_CONCURRENCY",
    # Fetching
    "AdaptiveFetcher",
    "BatchOutcome",
    # User agents
    "USER_AGENTS",
    "get_random_user_agent",
    "get_chrome_user_agent",
    # Normalization
    "PriceNormalizer",
    "CategoryClassifier",
    "get_color_hex",
    "infer_gender",
    "map_condition",
    "normalize_url",
    # Retry
    "with_retry",
    "exponential_backoff",
    "short_backoff",
]
