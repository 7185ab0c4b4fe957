"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from papertrader.core.exceptions import ExternalServiceError
from papertrader.services.market_data import Quote

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture(scope="function", autouse=True)
def reset_globals():
    """Drop any engine or client singleton left over from a previous test."""
    import papertrader.database.connection as db_conn
    import papertrader.services.market_data as market_data

    db_conn._engine = None
    db_conn._session_factory = None
    market_data._instance = None

    yield

    db_conn._engine = None
    db_conn._session_factory = None
    market_data._instance = None


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    from papertrader.api.app import create_api_app

    app = create_api_app()
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


# ============================================================================
# In-memory database
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_db() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Point the application at a fresh in-memory SQLite database."""
    import papertrader.database.connection as db_conn
    from papertrader.database.orm import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    db_conn._engine = engine
    db_conn._session_factory = factory

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def user(sqlite_db):
    """A registered user stored in the test database."""
    from papertrader.repositories import users_orm

    return await users_orm.create_user("trader@example.com", "trader_1", "not-a-real-hash")


@pytest_asyncio.fixture
async def other_user(sqlite_db):
    from papertrader.repositories import users_orm

    return await users_orm.create_user("other@example.com", "other_1", "not-a-real-hash")


@pytest.fixture
def auth_headers(user) -> dict:
    """Authorization headers for `user`."""
    from papertrader.core.security import create_session_token

    token = create_session_token(user.id, user.email, user.username)
    return {"Authorization": f"Bearer {token}"}


# ============================================================================
# Market data stub
# ============================================================================


class FakeMarketData:
    """Stands in for TiingoClient in API tests."""

    def __init__(self):
        self.price: Decimal | None = Decimal("100")
        self.error: Exception | None = None
        self.bars: list = []
        self.quote_calls: list[str] = []

    async def get_latest_quote(self, symbol: str) -> Quote:
        self.quote_calls.append(symbol)
        if self.error is not None:
            raise self.error
        if self.price is None:
            raise ExternalServiceError(message=f"No recent price for {symbol}")
        return Quote(symbol=symbol, price=self.price, as_of=date(2025, 8, 1))

    async def get_price_history(self, symbol, start_date=None, end_date=None):
        if self.error is not None:
            raise self.error
        return self.bars


@pytest.fixture
def fake_market() -> FakeMarketData:
    return FakeMarketData()


@pytest_asyncio.fixture
async def async_client(fake_market) -> AsyncGenerator[AsyncClient, None]:
    """Async client sharing the test's event loop (required for SQLite fixtures)."""
    from papertrader.api.app import create_api_app
    from papertrader.api.dependencies import get_market_data

    app = create_api_app()
    app.dependency_overrides[get_market_data] = lambda: fake_market
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
