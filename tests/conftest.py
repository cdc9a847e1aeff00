"""
Shared fixtures: a throwaway SQLite database per test and an offline price service.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from potlock_indexer.core.config import Settings
from potlock_indexer.core import database as db_module
from potlock_indexer.core.database import (
    DatabaseManager,
    close_database,
    get_async_session,
    init_database,
)
from potlock_indexer.core.exceptions import ExternalServiceError
from potlock_indexer.models import Base, TokenPrice
from potlock_indexer.services.price_service import PriceService


def make_settings(**overrides) -> Settings:
    values = {
        "environment": "test",
        "database_url": "sqlite:///:memory:",
        "indexer_poll_interval_ms": 10,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
async def database(tmp_path):
    """Fresh file-backed SQLite database with every table created."""
    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}")
    await DatabaseManager.create_tables()
    yield
    async with db_module.async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await close_database()


class OfflinePriceService(PriceService):
    """PriceService whose price feed is always unreachable."""

    def __init__(self, config=None):
        super().__init__(config)
        self.remote_calls = 0

    async def _fetch_remote_price(self) -> Decimal:
        self.remote_calls += 1
        raise ExternalServiceError("price feed offline")


@pytest.fixture
def price_service(test_settings):
    return OfflinePriceService(test_settings)


async def seed_price(at: datetime, price_usd: str, token_id: str = "near") -> None:
    async with get_async_session() as db:
        db.add(TokenPrice(
            token_id=token_id,
            timestamp=at,
            price_usd=Decimal(price_usd),
            source="test"
        ))
