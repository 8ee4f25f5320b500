"""Pytest configuration and fixtures."""

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from builder_trade_sync.storage.models import Base


@pytest.fixture
async def async_engine():
    """Create an async in-memory SQLite engine with the schema applied."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_session(async_engine) -> AsyncSession:
    """Create an async session for testing."""
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_raw_trade() -> dict[str, Any]:
    """A builder trade record as returned by the CLOB builder trades endpoint."""
    return {
        "id": "trade-1",
        "tradeType": "TAKER",
        "builder": "0xbuilder",
        "maker": "0xmaker",
        "owner": "0xowner",
        "market": "0xmarket",
        "assetId": "asset-1",
        "side": "BUY",
        "size": "21",
        "sizeUsdc": "10.5",
        "price": "0.5",
        "status": "CONFIRMED",
        "transactionHash": "0x" + "ab" * 32,
        "matchTime": "1700000000",
    }
