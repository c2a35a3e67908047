from typing import Optional
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedcycle.database.tables.feeds_table import Feeds
from feedcycle.feeds.feed import FeedCreate, FeedInDB
from feedcycle.main.exceptions import DuplicateUrlException, FeedNotFoundException


class FeedRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, id: UUID) -> Optional[FeedInDB]:
        stmt = sa.select(Feeds).where(Feeds.id == id)
        record = await self.session.scalar(stmt)

        if record is None:
            return None

        return FeedInDB.model_validate(record)

    async def get_by_url(self, url: str) -> Optional[FeedInDB]:
        stmt = sa.select(Feeds).where(Feeds.url == url)
        record = await self.session.scalar(stmt)

        if record is None:
            return None

        return FeedInDB.model_validate(record)

    async def get_all(self) -> list[FeedInDB]:
        stmt = sa.select(Feeds).order_by(Feeds.created_at, Feeds.url)
        records = await self.session.scalars(stmt)

        return [FeedInDB.model_validate(record) for record in records]

    async def add(self, feed: FeedCreate) -> UUID:
        """Insert a new feed and return its id.

        Raises DuplicateUrlException if a feed with the same url exists,
        either found up front or reported by the unique constraint.
        """
        existing = await self.session.scalar(
            sa.select(Feeds.id).where(Feeds.url == feed.url)
        )
        if existing is not None:
            raise DuplicateUrlException(feed.url)

        stmt = sa.insert(Feeds).values(**feed.model_dump()).returning(Feeds.id)

        try:
            return await self.session.scalar(stmt)
        except IntegrityError as e:
            raise DuplicateUrlException(feed.url) from e

    async def set_invalid(self, id: UUID, reason: str) -> FeedInDB:
        stmt = (
            sa.update(Feeds)
            .where(Feeds.id == id)
            .values(invalid=True, invalid_reason=reason)
            .returning(Feeds)
        )
        record = await self.session.scalar(stmt)

        if record is None:
            raise FeedNotFoundException(id)

        return FeedInDB.model_validate(record)

    async def update_cache_metadata(
        self, id: UUID, etag: Optional[str], last_modified: Optional[str]
    ) -> FeedInDB:
        stmt = (
            sa.update(Feeds)
            .where(Feeds.id == id)
            .values(etag=etag, last_modified=last_modified)
            .returning(Feeds)
        )
        record = await self.session.scalar(stmt)

        if record is None:
            raise FeedNotFoundException(id)

        return FeedInDB.model_validate(record)
