from __future__ import annotations

from functools import wraps
from typing import Awaitable, Callable, Optional

from arq.jobs import Job
from arq.worker import func as arq_func
from redis.exceptions import RedisError

from feedcycle.jobs.events import describe_failure
from feedcycle.jobs.job_models import Task
from feedcycle.jobs.queue_events import QueueEventPublisher
from feedcycle.jobs.task_models import FeedTaskParams, parse_feed_job_id
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.logging import get_logger
from feedcycle.redis.connection import build_arq_redis_settings, create_redis_client

logger = get_logger(__name__)

FeedProcessor = Callable[[FeedTaskParams], Awaitable[object]]


class Worker:
    """
    Queue-side glue for the feed worker.

    The processing function itself lives outside this package; it is
    registered with ``feed_task`` and runs as the ``process_feed`` arq job.
    After every job the worker reports failures and, once the queue is
    empty, a drain, on the queue events channel.

    Attributes:
        functions (list): Registered arq functions.
        redis_settings (RedisSettings): Redis settings for the worker.
        queue_name (str): arq queue the feed jobs live in.
        retry_jobs (bool): Failed feed jobs are never retried by arq.
        job_timeout (int): Timeout for one feed job in seconds.
        max_jobs (int): Maximum number of concurrent jobs.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.settings = settings
        self.functions = []
        self.redis_settings = build_arq_redis_settings(settings)
        self.queue_name = settings.queue_name
        self.on_startup = self.startup
        self.on_shutdown = self.shutdown
        self.after_job_end = self._after_job_end
        self.retry_jobs = False
        self.job_timeout = settings.worker_job_timeout_seconds
        self.max_jobs = settings.worker_max_jobs
        self.health_check_interval = 60

    async def startup(self, ctx: dict) -> None:
        ctx["events"] = QueueEventPublisher(
            create_redis_client(self.settings), self.settings
        )
        logger.info("Feed worker started", extra={"queue_name": self.queue_name})

    async def shutdown(self, ctx: dict) -> None:
        publisher: QueueEventPublisher | None = ctx.pop("events", None)
        if publisher is not None:
            await publisher.close()

    async def _after_job_end(self, ctx: dict) -> None:
        """arq hook, runs after each job has ended and its result is recorded."""
        job_id = ctx.get("job_id")
        parsed = parse_feed_job_id(job_id) if job_id else None
        if parsed is None:
            return

        pass_id, feed_id = parsed
        publisher: QueueEventPublisher = ctx["events"]

        try:
            job = Job(job_id=job_id, redis=ctx["redis"], _queue_name=self.queue_name)
            info = await job.result_info()
            if info is not None and not info.success:
                reason = describe_failure(info.result)
                logger.warning(
                    "Feed job failed",
                    extra={"job_id": job_id, "feed_id": str(feed_id), "error": reason},
                )
                await publisher.job_failed(feed_id, reason, job_id=job_id)

            await publisher.publish_if_drained(pass_id)
        except RedisError as exc:
            logger.error(
                "Unable to publish queue events",
                extra={"job_id": job_id, "error": str(exc)},
            )

    def feed_task(self):
        """Register the feed processing coroutine as the process_feed job."""

        def decorator(func: FeedProcessor):
            @wraps(func)
            async def wrapper(ctx: dict, params: FeedTaskParams | dict):
                if not isinstance(params, FeedTaskParams):
                    params = FeedTaskParams.model_validate(params)

                logger.debug(
                    f"Executing {func.__name__}",
                    extra={"job_id": ctx.get("job_id"), "feed_id": str(params.id)},
                )
                return await func(params)

            self.functions.append(arq_func(wrapper, name=Task.PROCESS_FEED.value))
            return wrapper

        return decorator
