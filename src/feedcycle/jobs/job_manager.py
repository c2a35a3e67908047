from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis
from arq.jobs import SerializationError
from arq.worker import JobExecutionFailed

from feedcycle.jobs.events import JobFailed, describe_failure
from feedcycle.jobs.job_models import Task
from feedcycle.jobs.queue_events import queue_is_empty
from feedcycle.jobs.task_models import FeedTaskParams, feed_job_id, parse_feed_job_id
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.exceptions import NotReadyException
from feedcycle.main.logging import get_logger
from feedcycle.redis.connection import build_arq_redis_settings

logger = get_logger(__name__)

# arq records these without running the job, and without calling after_job_end
SKIPPED_JOB_FAILURES = (JobExecutionFailed, SerializationError)


class JobManager:
    def __init__(self, settings: Settings | None = None):
        self._settings = settings
        self._redis: ArqRedis | None = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    async def init(self):
        settings = self.settings
        self._redis = await create_pool(
            build_arq_redis_settings(settings),
            default_queue_name=settings.queue_name,
        )

        logger.debug(
            f"Job manager connected to redis on host {settings.redis_host}"
            f" and port {settings.redis_port}"
        )

    async def close(self):
        if self._redis is None:
            return
        await self._redis.aclose()
        self._redis = None

    async def add_feed(self, feed_id: UUID, pass_id: str) -> bool:
        """Enqueue a process-feed job.

        Returns False when arq already holds a job with this id, i.e. the
        feed was already queued during this pass.
        """
        if self._redis is None:
            raise NotReadyException("Job manager is not initialized!")

        job = await self._redis.enqueue_job(
            Task.PROCESS_FEED.value,
            FeedTaskParams(id=feed_id, pass_id=pass_id),
            _job_id=feed_job_id(feed_id, pass_id),
        )

        return job is not None

    async def is_queue_empty(self) -> bool:
        if self._redis is None:
            raise NotReadyException("Job manager is not initialized!")

        return await queue_is_empty(self._redis, self.settings.queue_name)

    async def failures_without_report(self, pass_id: str) -> list[JobFailed]:
        """Failed feed jobs of a pass that the worker never got to report.

        Jobs that expired in the queue or ran out of retries are failed by
        arq before the job runs, so no JobFailed was published for them.
        """
        if self._redis is None:
            raise NotReadyException("Job manager is not initialized!")

        failures = []
        for result in await self._redis.all_job_results():
            parsed = parse_feed_job_id(result.job_id) if result.job_id else None
            if parsed is None or parsed[0] != pass_id or result.success:
                continue
            if not isinstance(result.result, SKIPPED_JOB_FAILURES):
                continue

            failures.append(
                JobFailed(
                    feed_id=parsed[1],
                    reason=describe_failure(result.result),
                    job_id=result.job_id,
                )
            )

        return failures


job_manager = JobManager()
