"""Queue lifecycle events carried over a Redis pub/sub channel.

The worker process publishes JobFailed and QueueDrained messages, the
cycle process listens and forwards them onto its EventBus.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from arq.constants import in_progress_key_prefix
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from feedcycle.jobs.events import EventBus, JobFailed, QueueDrained, queue_event_adapter
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.logging import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = get_logger(__name__)

DRAINED_MARKER_TTL_SECONDS = 60 * 60


async def queue_is_empty(redis_client: aioredis.Redis, queue_name: str) -> bool:
    """True when arq holds no queued and no in-progress jobs."""
    if await redis_client.zcard(queue_name) > 0:
        return False

    async for _ in redis_client.scan_iter(match=f"{in_progress_key_prefix}*", count=100):
        return False

    return True


class QueueEventPublisher:
    def __init__(self, redis_client: aioredis.Redis, settings: Optional[Settings] = None):
        self._redis = redis_client
        self._settings = settings or get_settings()

    async def publish(self, event: BaseModel) -> None:
        await self._redis.publish(
            self._settings.queue_events_channel, event.model_dump_json()
        )

    async def job_failed(
        self, feed_id: UUID, reason: Optional[str], job_id: Optional[str] = None
    ) -> None:
        await self.publish(JobFailed(feed_id=feed_id, reason=reason, job_id=job_id))

    async def is_queue_empty(self) -> bool:
        return await queue_is_empty(self._redis, self._settings.queue_name)

    async def publish_if_drained(self, pass_id: str) -> bool:
        """Publish QueueDrained at most once per pass, and only if the queue is empty."""
        if not await self.is_queue_empty():
            return False

        marker = f"{self._settings.queue_key_prefix}:drained:{pass_id}"
        if not await self._redis.set(marker, "1", nx=True, ex=DRAINED_MARKER_TTL_SECONDS):
            return False

        await self.publish(QueueDrained(pass_id=pass_id))
        logger.info("Feed queue drained", extra={"pass_id": pass_id})
        return True

    async def close(self) -> None:
        await self._redis.aclose()


class QueueEventListener:
    def __init__(
        self,
        redis_client: aioredis.Redis,
        bus: EventBus,
        settings: Optional[Settings] = None,
        reconnect_delay_seconds: float = 5.0,
    ):
        self._redis = redis_client
        self._bus = bus
        self._settings = settings or get_settings()
        self._reconnect_delay_seconds = reconnect_delay_seconds
        self._running = False
        self._task: asyncio.Task | None = None

    def handle_message(self, data: bytes | str) -> Optional[BaseModel]:
        """Parse one channel message and hand it to the bus."""
        try:
            event = queue_event_adapter.validate_json(data)
        except ValidationError as exc:
            logger.warning(
                "Ignoring malformed queue event",
                extra={"error": str(exc), "payload": str(data)[:200]},
            )
            return None

        self._bus.publish(event)
        return event

    async def _listen_once(self) -> None:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(self._settings.queue_events_channel)
            logger.info(
                "Listening for queue events",
                extra={"channel": self._settings.queue_events_channel},
            )
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.handle_message(message["data"])
        finally:
            await pubsub.aclose()

    async def run_forever(self) -> None:
        self._running = True
        while self._running:
            try:
                await self._listen_once()
            except RedisError as exc:
                logger.error(
                    "Queue event subscription lost, reconnecting",
                    extra={"error": str(exc)},
                )
                await asyncio.sleep(self._reconnect_delay_seconds)

    def start(self) -> asyncio.Task:
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task is None:
            return

        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
