"""Queue lifecycle messages and the in-process bus that delivers them."""

import asyncio
from collections import defaultdict
from typing import Annotated, Awaitable, Callable, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from feedcycle.main.logging import get_logger

logger = get_logger(__name__)


class JobFailed(BaseModel):
    type: Literal["job_failed"] = "job_failed"
    feed_id: UUID
    reason: Optional[str] = None
    job_id: Optional[str] = None


class QueueDrained(BaseModel):
    type: Literal["queue_drained"] = "queue_drained"
    pass_id: Optional[str] = None


QueueEvent = Annotated[Union[JobFailed, QueueDrained], Field(discriminator="type")]
queue_event_adapter: TypeAdapter[QueueEvent] = TypeAdapter(QueueEvent)

Handler = Callable[[BaseModel], Awaitable[None]]


def describe_failure(result: object) -> str:
    """Turn a failed job's recorded result into a JobFailed reason."""
    if isinstance(result, BaseException):
        message = str(result)
        return f"{type(result).__name__}: {message}" if message else type(result).__name__
    return str(result) if result is not None else "unknown reason"


class EventBus:
    """Callback registry for queue events.

    Every handler runs in its own task, so a slow handler for one event
    type never holds up the others.
    """

    def __init__(self):
        self._handlers: dict[type[BaseModel], list[Handler]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: type[BaseModel], handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: BaseModel) -> list[asyncio.Task]:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug(f"No handlers registered for {type(event).__name__}")
            return []

        tasks = []
        for handler in handlers:
            task = asyncio.create_task(self._dispatch(handler, event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            tasks.append(task)

        return tasks

    async def _dispatch(self, handler: Handler, event: BaseModel) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception(
                f"Handler {getattr(handler, '__qualname__', handler)} failed",
                extra={"event_type": type(event).__name__},
            )

    async def join(self) -> None:
        """Wait until every in-flight handler task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
