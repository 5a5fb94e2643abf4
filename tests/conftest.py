"""Shared fixtures: a fresh SQLite database per test."""
import pytest
import pytest_asyncio

from commission_engine import models  # noqa: F401
from commission_engine.database import Base, create_engine_for_url, create_session_factory
from commission_engine.services.commission_config_service import invalidate_rates_cache


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'commission_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_rates_cache():
    invalidate_rates_cache()
    yield
    invalidate_rates_cache()
