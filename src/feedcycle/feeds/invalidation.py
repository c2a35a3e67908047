from feedcycle.feeds.feed_store import FeedStore
from feedcycle.jobs.events import EventBus, JobFailed
from feedcycle.main.exceptions import FeedCycleException, FeedNotFoundException
from feedcycle.main.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_REASON = "unknown reason"


class InvalidationHandler:
    """Marks a feed invalid whenever its processing job fails."""

    def __init__(self, store: FeedStore):
        self.store = store

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(JobFailed, self.on_job_failed)

    async def on_job_failed(self, event: JobFailed) -> None:
        reason = (event.reason or "").strip() or UNKNOWN_REASON

        try:
            feed = await self.store.by_id(event.feed_id)
            if feed is None:
                raise FeedNotFoundException(event.feed_id)

            await self.store.set_invalid(feed.id, reason)
        except FeedNotFoundException:
            logger.warning(
                "Job failed for a feed that no longer exists, nothing to invalidate",
                extra={"feed_id": str(event.feed_id), "job_id": event.job_id},
            )
            return
        except FeedCycleException as exc:
            logger.error(
                "Unable to invalidate feed",
                extra={"feed_id": str(event.feed_id), "error": str(exc)},
            )
            return

        logger.info(
            f"Invalidating feed {feed.url} for the following reason: {reason}",
            extra={"feed_id": str(feed.id), "job_id": event.job_id},
        )
