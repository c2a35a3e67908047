from feedcycle.feeds.feed import DiscoveredSource, FeedCreate, FeedInDB
from feedcycle.feeds.feed_store import FeedStore
from feedcycle.main.exceptions import DuplicateUrlException, FeedNotFoundException
from feedcycle.main.logging import get_logger

logger = get_logger(__name__)


class FeedReconciler:
    """Map a discovered source onto its canonical Feed record.

    A persisted feed always wins over the discovered data, since it may
    carry conditional-fetch metadata (etag, last-modified) that the
    directory knows nothing about. Fields that change upstream, such as
    the author name, are therefore not refreshed here.
    """

    def __init__(self, store: FeedStore):
        self.store = store

    async def reconcile(self, source: DiscoveredSource) -> FeedInDB:
        existing = await self.store.by_url(source.url)
        if existing is not None:
            return existing

        try:
            feed_id = await self.store.create(FeedCreate.from_source(source))
        except DuplicateUrlException:
            # Someone else created it between our lookup and insert
            logger.debug("Feed created concurrently, reusing it", extra={"url": source.url})
            existing = await self.store.by_url(source.url)
            if existing is None:
                raise
            return existing

        # Read back to pick up store-assigned defaults
        feed = await self.store.by_id(feed_id)
        if feed is None:
            raise FeedNotFoundException(feed_id)

        logger.info(f"Added new feed {feed.url}", extra={"feed_id": str(feed.id)})
        return feed
