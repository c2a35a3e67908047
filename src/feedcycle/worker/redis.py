"""Worker health as seen through arq's health-check key."""

from datetime import datetime, timezone
from typing import NamedTuple, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from feedcycle.main.config import Settings, get_settings


class WorkerHealth(NamedTuple):
    status: str  # "HEALTHY", "UNHEALTHY", "UNKNOWN"
    last_heartbeat: str | None
    details: str | None


async def get_worker_health(
    redis_client: aioredis.Redis, settings: Optional[Settings] = None
) -> WorkerHealth:
    """Check whether an arq worker is serving the feed queue."""
    settings = settings or get_settings()
    health_key = f"{settings.queue_name}:health-check"

    try:
        worker_health_data = await redis_client.get(health_key)
    except RedisError as e:
        return WorkerHealth(
            status="UNKNOWN",
            last_heartbeat=None,
            details=f"Redis connection error: {str(e)}",
        )

    if not worker_health_data:
        return WorkerHealth(
            status="UNHEALTHY",
            last_heartbeat=None,
            details="Worker health check key not found or expired",
        )

    if isinstance(worker_health_data, bytes):
        worker_health_data = worker_health_data.decode("utf-8")

    return WorkerHealth(
        status="HEALTHY",
        last_heartbeat=datetime.now(timezone.utc).isoformat(),
        details=worker_health_data,
    )
