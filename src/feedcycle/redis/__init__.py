"""Shared Redis connection utilities."""

from feedcycle.redis.connection import build_arq_redis_settings, build_redis_pool_kwargs

__all__ = ["build_arq_redis_settings", "build_redis_pool_kwargs"]
