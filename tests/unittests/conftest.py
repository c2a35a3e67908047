from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feedcycle.database.tables.feeds_table import Feeds
from feedcycle.directory.directory_client import DirectoryFetchResult
from feedcycle.feeds.feed import DiscoveredSource
from feedcycle.feeds.feed_store import FeedStore
from feedcycle.main.config import Settings, reset_settings


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings with explicit values for unit tests.

    Provides a clean, isolated configuration that doesn't depend on the
    .env file or environment variables.
    """
    return Settings(
        directory_url="http://directory.test/",
        service_token_secret="unit-test-service-secret",
        postgres_user="unit_test_user",
        postgres_host="localhost",
        postgres_password="unit_test_password",
        postgres_port=5432,
        postgres_db="unit_test_db",
        redis_host="localhost",
        redis_port=6379,
        feed_enqueue_concurrency=4,
        # Drive every pass explicitly in tests
        cycle_retry_delay_seconds=0,
        testing=True,
        dev=True,
    )


@pytest.fixture(autouse=True)
def reset_settings_after_test():
    """Reset settings after each test to prevent state leakage."""
    yield
    reset_settings()


@pytest.fixture
async def session_factory():
    """In-memory SQLite database with the feeds table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool
    )

    async with engine.begin() as conn:
        await conn.run_sync(Feeds.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False, autobegin=False)

    await engine.dispose()


@pytest.fixture
def feed_store(session_factory) -> FeedStore:
    return FeedStore(session_factory=session_factory)


@pytest.fixture
def job_manager():
    """Job manager double that records every enqueued feed id."""
    manager = MagicMock()
    manager.add_feed = AsyncMock(return_value=True)
    manager.is_queue_empty = AsyncMock(return_value=False)
    manager.failures_without_report = AsyncMock(return_value=[])
    return manager


def make_directory_client(*sources: DiscoveredSource, excluded_flagged: int = 0):
    client = MagicMock()
    client.fetch = AsyncMock(
        return_value=DirectoryFetchResult(
            sources=list(sources), excluded_flagged=excluded_flagged
        )
    )
    return client


@pytest.fixture
def directory_client_factory():
    return make_directory_client


@pytest.fixture
def source_factory():
    def _make(url: str | None = None, **kwargs) -> DiscoveredSource:
        return DiscoveredSource(url=url or f"https://blog.test/{uuid4().hex}/feed", **kwargs)

    return _make
