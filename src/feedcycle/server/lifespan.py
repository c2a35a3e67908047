"""Process-wide wiring for the feed cycle."""

from dataclasses import dataclass
from typing import Optional

import redis.asyncio as aioredis

from feedcycle.cycle.controller import CycleController
from feedcycle.database.database import sessionmanager
from feedcycle.directory.directory_client import SourceDirectoryClient
from feedcycle.feeds.feed_store import FeedStore
from feedcycle.feeds.invalidation import InvalidationHandler
from feedcycle.feeds.reconciler import FeedReconciler
from feedcycle.jobs.events import EventBus
from feedcycle.jobs.job_manager import job_manager
from feedcycle.jobs.queue_events import QueueEventListener
from feedcycle.main.aiohttp_client import aiohttp_client
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.logging import get_logger
from feedcycle.redis.connection import create_redis_client

logger = get_logger(__name__)


@dataclass
class FeedCycleService:
    bus: EventBus
    controller: CycleController
    invalidation_handler: InvalidationHandler
    listener: Optional[QueueEventListener] = None
    redis_client: Optional[aioredis.Redis] = None


def build_service(
    settings: Settings,
    store: FeedStore,
    directory_client: SourceDirectoryClient,
    job_manager,
) -> FeedCycleService:
    """Wire controller and invalidation handler onto a fresh event bus."""
    bus = EventBus()
    controller = CycleController(
        store=store,
        directory_client=directory_client,
        reconciler=FeedReconciler(store),
        job_manager=job_manager,
        settings=settings,
    )
    invalidation_handler = InvalidationHandler(store)

    controller.subscribe(bus)
    invalidation_handler.subscribe(bus)

    return FeedCycleService(
        bus=bus, controller=controller, invalidation_handler=invalidation_handler
    )


async def startup(start_cycle: bool = True) -> FeedCycleService:
    settings = get_settings()

    aiohttp_client.start(total_timeout=settings.directory_timeout_seconds)
    sessionmanager.init(settings.database_url)
    await job_manager.init()

    service = build_service(
        settings=settings,
        store=FeedStore(),
        directory_client=SourceDirectoryClient(settings=settings),
        job_manager=job_manager,
    )

    service.redis_client = create_redis_client(settings)
    service.listener = QueueEventListener(service.redis_client, service.bus, settings)
    service.listener.start()

    if start_cycle:
        service.controller.start()

    logger.info("Feed cycle service started")
    return service


async def shutdown(service: FeedCycleService) -> None:
    await service.controller.stop()

    if service.listener is not None:
        await service.listener.stop()

    await service.bus.join()

    if service.redis_client is not None:
        await service.redis_client.aclose()

    await job_manager.close()
    await sessionmanager.close()
    await aiohttp_client.stop()
    logger.info("Feed cycle service stopped")
