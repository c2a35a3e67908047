"""arq entrypoint for the feed worker.

The feed processor registers itself on ``worker`` and is then started with
``arq feedcycle.worker.arq.WorkerSettings``::

    from feedcycle.worker.arq import worker

    @worker.feed_task()
    async def process_feed(params):
        ...
"""

from feedcycle.worker.worker import Worker

worker = Worker()


class WorkerSettings:
    functions = worker.functions
    redis_settings = worker.redis_settings
    queue_name = worker.queue_name
    on_startup = worker.on_startup
    on_shutdown = worker.on_shutdown
    after_job_end = worker.after_job_end
    retry_jobs = worker.retry_jobs
    job_timeout = worker.job_timeout
    max_jobs = worker.max_jobs
    health_check_interval = worker.health_check_interval
