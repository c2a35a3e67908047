"""Run the feed cycle.

Usage:
    python -m feedcycle.cli.run_cycle           # run until SIGINT/SIGTERM
    python -m feedcycle.cli.run_cycle --once    # one pass, print its report
    python -m feedcycle.cli.run_cycle --health  # report feed worker health
"""

import argparse
import asyncio
import signal
from dataclasses import asdict

from feedcycle.main.config import get_settings
from feedcycle.main.logging import get_logger
from feedcycle.redis.connection import create_redis_client
from feedcycle.server import lifespan
from feedcycle.worker.redis import get_worker_health

logger = get_logger(__name__)


async def run_forever() -> None:
    service = await lifespan.startup()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
        logger.info("Shutdown requested")
    finally:
        await lifespan.shutdown(service)


async def run_once() -> int:
    service = await lifespan.startup(start_cycle=False)
    try:
        report = await service.controller.run_pass()
    finally:
        await lifespan.shutdown(service)

    for key, value in asdict(report).items():
        print(f"{key}: {value}")

    return 0 if report.succeeded else 1


async def check_health() -> int:
    settings = get_settings()
    redis_client = create_redis_client(settings)
    try:
        health = await get_worker_health(redis_client, settings)
    finally:
        await redis_client.aclose()

    print(f"status: {health.status}")
    if health.details:
        print(f"details: {health.details}")

    return 0 if health.status == "HEALTHY" else 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Discover feeds and keep the feed queue fed.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--once", action="store_true", help="run a single pass and exit")
    group.add_argument("--health", action="store_true", help="check feed worker health")
    args = parser.parse_args(argv)

    if args.health:
        return asyncio.run(check_health())

    if args.once:
        return asyncio.run(run_once())

    asyncio.run(run_forever())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
