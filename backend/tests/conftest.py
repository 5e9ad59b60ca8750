"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from typing import List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shopfeed.models import Base
from shopfeed.scrapers.base import NormalizedProduct


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite store with the catalog schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def no_sleep():
    """Recording replacement for asyncio.sleep."""
    calls: List[float] = []

    async def sleep(seconds: float) -> None:
        calls.append(seconds)

    sleep.calls = calls
    return sleep


def make_product(
    source_url: str = "https://shop.example.com/products/organic-cotton-tee",
    name: str = "Organic Cotton Tee",
    price: str = "30.00",
    **overrides,
) -> NormalizedProduct:
    """Valid NormalizedProduct with sensible defaults."""
    fields = dict(
        name=name,
        description=f"{name} from Example",
        brand="Example",
        price=Decimal(price),
        category="tops",
        source_url=source_url,
        source_platform="Example",
        gender="unisex",
    )
    fields.update(overrides)
    return NormalizedProduct(**fields)
