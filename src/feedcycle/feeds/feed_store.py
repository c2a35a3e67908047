"""Feed Store: per-operation transactions over FeedRepository.

Every call opens its own session and transaction, so a rejected create
never poisons later reads in the same pass and each mutation is atomic
on its own. Storage-engine failures surface as StoreUnavailableException.
"""

import contextlib
from typing import AsyncContextManager, AsyncIterator, Callable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedcycle.database.database import sessionmanager
from feedcycle.feeds.feed import FeedCreate, FeedInDB
from feedcycle.feeds.feed_repo import FeedRepository
from feedcycle.main.exceptions import StoreUnavailableException
from feedcycle.main.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class FeedStore:
    def __init__(self, session_factory: Optional[SessionFactory] = None):
        self._session_factory = session_factory or sessionmanager.session

    @contextlib.asynccontextmanager
    async def _repo(self, operation: str) -> AsyncIterator[FeedRepository]:
        try:
            async with self._session_factory() as session, session.begin():
                yield FeedRepository(session)
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                f"Feed store operation '{operation}' failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreUnavailableException(
                f"Feed store unavailable during {operation}"
            ) from exc

    async def by_url(self, url: str) -> Optional[FeedInDB]:
        async with self._repo("by_url") as repo:
            return await repo.get_by_url(url)

    async def by_id(self, id: UUID) -> Optional[FeedInDB]:
        async with self._repo("by_id") as repo:
            return await repo.get(id)

    async def all(self) -> list[FeedInDB]:
        async with self._repo("all") as repo:
            return await repo.get_all()

    async def create(self, feed: FeedCreate) -> UUID:
        async with self._repo("create") as repo:
            feed_id = await repo.add(feed)

        logger.debug("Created feed", extra={"feed_id": str(feed_id), "url": feed.url})
        return feed_id

    async def set_invalid(self, id: UUID, reason: str) -> FeedInDB:
        async with self._repo("set_invalid") as repo:
            return await repo.set_invalid(id, reason)

    async def set_cache_metadata(
        self, id: UUID, etag: Optional[str], last_modified: Optional[str]
    ) -> FeedInDB:
        async with self._repo("set_cache_metadata") as repo:
            return await repo.update_cache_metadata(id, etag, last_modified)
