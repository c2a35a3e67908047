"""Cycle Controller: one discovery -> reconcile -> enqueue pass at a time.

A pass is started by an explicit call to start() (process startup) and
afterwards by the queue reporting that it has drained, which makes the
cycle repeat for as long as the process lives. The pace is set by how
fast the workers empty the queue. A watchdog polls the queue after a
pass in case the drained message never reaches this process.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from redis.exceptions import RedisError

from feedcycle.directory.directory_client import SourceDirectoryClient
from feedcycle.feeds.feed_store import FeedStore
from feedcycle.feeds.reconciler import FeedReconciler
from feedcycle.jobs.events import EventBus, QueueDrained
from feedcycle.jobs.job_manager import JobManager
from feedcycle.main.config import Settings, get_settings
from feedcycle.main.exceptions import (
    DirectoryUnavailableException,
    FeedCycleException,
    StoreUnavailableException,
)
from feedcycle.main.log_context import set_log_context
from feedcycle.main.logging import get_logger

logger = get_logger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class PassReport:
    pass_id: str
    existing: int = 0
    discovered: int = 0
    excluded_flagged: int = 0
    created: int = 0
    enqueued: int = 0
    failed_enqueues: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class CycleController:
    def __init__(
        self,
        store: FeedStore,
        directory_client: SourceDirectoryClient,
        reconciler: FeedReconciler,
        job_manager: JobManager,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.directory_client = directory_client
        self.reconciler = reconciler
        self.job_manager = job_manager
        self.settings = settings or get_settings()

        self.state = CycleState.IDLE
        self.passes_started = 0
        self.last_report: Optional[PassReport] = None
        self._bus: Optional[EventBus] = None
        self._pass_task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._restart_pending = False
        self._previous_pass_id: Optional[str] = None
        self._stopped = False

    def subscribe(self, bus: EventBus) -> None:
        self._bus = bus
        bus.subscribe(QueueDrained, self.on_queue_drained)

    async def on_queue_drained(self, event: QueueDrained) -> None:
        logger.info(
            "Feed queue drained, starting a new pass",
            extra={"drained_pass_id": event.pass_id},
        )
        self.start()

    def start(self) -> Optional[asyncio.Task]:
        """Schedule a pass unless one is already running.

        A request that arrives while a pass is running is remembered, and
        one more pass follows when the running pass ends. Returns the pass
        task, or None when the request was deferred or the controller is
        stopped.
        """
        if self._stopped:
            logger.debug("Controller stopped, ignoring start request")
            return None

        if self.state is CycleState.RUNNING:
            logger.debug("Pass already running, another pass will follow it")
            self._restart_pending = True
            return None

        return self._launch()

    async def run_pass(self) -> Optional[PassReport]:
        """Run one pass and return its report (None if one is running)."""
        if self.state is CycleState.RUNNING:
            return None

        return await self._launch()

    async def wait_idle(self) -> None:
        while self._pass_task is not None and not self._pass_task.done():
            await self._pass_task

    async def stop(self) -> None:
        self._stopped = True
        self._restart_pending = False
        self._cancel_retry()
        await self.wait_idle()

    def _launch(self) -> asyncio.Task:
        self._cancel_retry()
        # Claim the state before yielding so a concurrent start() sees it
        self.state = CycleState.RUNNING
        self._pass_task = asyncio.create_task(self._execute_pass())
        return self._pass_task

    async def _execute_pass(self) -> PassReport:
        report = PassReport(pass_id=uuid4().hex[:12])
        self.passes_started += 1
        set_log_context(pass_id=report.pass_id)
        logger.info("Loading all feeds into feed queue for processing")

        if self._previous_pass_id is not None:
            await self._report_skipped_failures(self._previous_pass_id)

        try:
            feed_ids = await self._collect_feed_ids(report)
            await self._enqueue_all(feed_ids, report)
        except DirectoryUnavailableException as exc:
            report.error = str(exc)
            logger.error(
                "Unable to fetch feed sources, aborting pass",
                extra={"error": str(exc), "status_code": exc.status_code},
            )
        except StoreUnavailableException as exc:
            report.error = str(exc)
            logger.error("Feed store unavailable, aborting pass", extra={"error": str(exc)})
        except Exception as exc:
            report.error = str(exc) or type(exc).__name__
            logger.exception("Error queuing feeds")
        finally:
            self.state = CycleState.IDLE
            self.last_report = report
            self._previous_pass_id = report.pass_id
            set_log_context(pass_id=None)

        if report.succeeded:
            logger.info(
                f"Pass complete: {report.enqueued} feeds enqueued "
                f"({report.created} new, {report.failed_enqueues} failed)",
                extra={
                    "pass_id": report.pass_id,
                    "existing": report.existing,
                    "discovered": report.discovered,
                    "excluded_flagged": report.excluded_flagged,
                },
            )

        if self._restart_pending and not self._stopped:
            self._restart_pending = False
            logger.info("Start requested during the pass, starting the next one")
            self._launch()
        else:
            self._schedule_follow_up(report)

        return report

    async def _report_skipped_failures(self, pass_id: str) -> None:
        """Forward failures of an earlier pass that no worker reported."""
        try:
            failures = await self.job_manager.failures_without_report(pass_id)
        except (RedisError, OSError, FeedCycleException) as exc:
            logger.error(
                "Unable to read job results of the previous pass",
                extra={"previous_pass_id": pass_id, "error": str(exc)},
            )
            return

        if not failures:
            return

        if self._bus is None:
            logger.warning(
                f"{len(failures)} unreported job failures and no event bus to report them on",
                extra={"previous_pass_id": pass_id},
            )
            return

        logger.warning(
            f"Reporting {len(failures)} job failures the worker did not report",
            extra={"previous_pass_id": pass_id},
        )
        for event in failures:
            self._bus.publish(event)

    async def _collect_feed_ids(self, report: PassReport) -> list[UUID]:
        existing = await self.store.all()
        report.existing = len(existing)

        fetched = await self.directory_client.fetch()
        report.discovered = len(fetched.sources)
        report.excluded_flagged = fetched.excluded_flagged

        # Insertion-ordered, distinct feed ids for this pass
        feed_ids: dict[UUID, None] = dict.fromkeys(feed.id for feed in existing)
        resolved_urls: dict[str, UUID] = {feed.url: feed.id for feed in existing}

        for source in fetched.sources:
            if source.url in resolved_urls:
                continue

            feed = await self.reconciler.reconcile(source)
            resolved_urls[source.url] = feed.id
            if feed.id not in feed_ids:
                feed_ids[feed.id] = None
                report.created += 1

        return list(feed_ids)

    async def _enqueue_all(self, feed_ids: list[UUID], report: PassReport) -> None:
        semaphore = asyncio.Semaphore(self.settings.feed_enqueue_concurrency)

        async def enqueue(feed_id: UUID) -> None:
            async with semaphore:
                try:
                    added = await self.job_manager.add_feed(feed_id, report.pass_id)
                except (RedisError, OSError, FeedCycleException) as exc:
                    report.failed_enqueues += 1
                    logger.error(
                        "Unable to enqueue feed",
                        extra={"feed_id": str(feed_id), "error": str(exc)},
                    )
                    return

            if added:
                report.enqueued += 1
            else:
                logger.debug("Feed already queued for this pass", extra={"feed_id": str(feed_id)})

        await asyncio.gather(*(enqueue(feed_id) for feed_id in feed_ids))

    def _schedule_follow_up(self, report: PassReport) -> None:
        """Make sure another pass starts even if no drained event arrives."""
        delay = self.settings.cycle_retry_delay_seconds
        if delay <= 0 or self._stopped:
            return

        if report.enqueued > 0:
            self._watchdog_task = asyncio.create_task(self._watch_queue(delay))
            return

        logger.warning(
            f"Pass enqueued no jobs, retrying in {delay}s",
            extra={"pass_id": report.pass_id, "error": report.error},
        )
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self.start)

    async def _watch_queue(self, delay: float) -> None:
        while not self._stopped and self.state is CycleState.IDLE:
            await asyncio.sleep(delay)

            try:
                drained = await self.job_manager.is_queue_empty()
            except (RedisError, OSError, FeedCycleException) as exc:
                logger.error("Unable to check the feed queue", extra={"error": str(exc)})
                continue

            if drained:
                logger.warning(
                    "Feed queue is empty but no drained event arrived, starting a new pass"
                )
                self._watchdog_task = None
                self.start()
                return

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

        if self._watchdog_task is not None:
            self._watchdog_task.cancel()
            self._watchdog_task = None
