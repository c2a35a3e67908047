from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from arq.worker import JobExecutionFailed

from feedcycle.jobs.events import JobFailed
from feedcycle.jobs.job_manager import JobManager
from feedcycle.jobs.job_models import Task
from feedcycle.jobs.task_models import FeedTaskParams, feed_job_id
from feedcycle.main.exceptions import NotReadyException


@pytest.fixture
def arq_redis():
    redis = MagicMock()
    redis.enqueue_job = AsyncMock(return_value=MagicMock())
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
async def manager(test_settings, arq_redis):
    manager = JobManager(settings=test_settings)
    with patch(
        "feedcycle.jobs.job_manager.create_pool", AsyncMock(return_value=arq_redis)
    ) as create_pool:
        await manager.init()

    assert create_pool.await_args.kwargs["default_queue_name"] == test_settings.queue_name
    return manager


@pytest.mark.asyncio
async def test_add_feed_enqueues_process_feed_job(manager, arq_redis):
    feed_id = uuid4()

    added = await manager.add_feed(feed_id, "pass1")

    assert added is True
    arq_redis.enqueue_job.assert_awaited_once_with(
        Task.PROCESS_FEED.value,
        FeedTaskParams(id=feed_id, pass_id="pass1"),
        _job_id=feed_job_id(feed_id, "pass1"),
    )


@pytest.mark.asyncio
async def test_add_feed_reports_already_queued(manager, arq_redis):
    arq_redis.enqueue_job.return_value = None

    assert await manager.add_feed(uuid4(), "pass1") is False


@pytest.mark.asyncio
async def test_add_feed_before_init_raises(test_settings):
    with pytest.raises(NotReadyException):
        await JobManager(settings=test_settings).add_feed(uuid4(), "pass1")


@pytest.mark.asyncio
async def test_close_releases_pool(manager, arq_redis):
    await manager.close()

    arq_redis.aclose.assert_awaited_once()
    with pytest.raises(NotReadyException):
        await manager.add_feed(uuid4(), "pass1")


def make_result(job_id, success, result):
    return MagicMock(job_id=job_id, success=success, result=result)


@pytest.mark.asyncio
async def test_failures_without_report_returns_jobs_arq_failed_before_running(
    manager, arq_redis
):
    expired = uuid4()
    exhausted = uuid4()
    arq_redis.all_job_results = AsyncMock(
        return_value=[
            make_result(feed_job_id(expired, "p1"), False, JobExecutionFailed("job expired")),
            make_result(
                feed_job_id(exhausted, "p1"),
                False,
                JobExecutionFailed("max 5 retries exceeded"),
            ),
            # Reported by the worker's after-job hook already
            make_result(feed_job_id(uuid4(), "p1"), False, ValueError("HTTP 404")),
            make_result(feed_job_id(uuid4(), "p1"), True, None),
            # Other pass, other job kinds
            make_result(feed_job_id(uuid4(), "p0"), False, JobExecutionFailed("job expired")),
            make_result("cron:cleanup", False, JobExecutionFailed("job expired")),
        ]
    )

    failures = await manager.failures_without_report("p1")

    assert failures == [
        JobFailed(
            feed_id=expired,
            reason="JobExecutionFailed: job expired",
            job_id=feed_job_id(expired, "p1"),
        ),
        JobFailed(
            feed_id=exhausted,
            reason="JobExecutionFailed: max 5 retries exceeded",
            job_id=feed_job_id(exhausted, "p1"),
        ),
    ]


@pytest.mark.asyncio
async def test_is_queue_empty_checks_queue_and_in_progress_jobs(manager, arq_redis):
    async def scan_iter(**kwargs):
        for key in []:
            yield key

    arq_redis.zcard = AsyncMock(return_value=0)
    arq_redis.scan_iter = MagicMock(side_effect=scan_iter)

    assert await manager.is_queue_empty() is True

    arq_redis.zcard.return_value = 2
    assert await manager.is_queue_empty() is False


@pytest.mark.asyncio
async def test_queue_checks_before_init_raise(test_settings):
    manager = JobManager(settings=test_settings)

    with pytest.raises(NotReadyException):
        await manager.is_queue_empty()

    with pytest.raises(NotReadyException):
        await manager.failures_without_report("p1")
