# meet_engine/services/events_cache.py
"""
Read-through cache of a coach's meetings per calendar month, kept in Redis.

Keyed by month_events:{coach_id}:{year}:{month}. Entries expire after
`ttl_seconds` (SETEX) and are dropped explicitly by every write that
touches the month (see invalidate_interval). Every worker shares the same
Redis, so an invalidation in one process is seen by all of them.

Without REDIS_URL, or when Redis is unreachable, every read is a miss and
the listing comes straight from the database.
"""
import json
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import redis

from meet_engine.config import get_settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "month_events"

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Shared Redis connection, created on first use.

    Raises:
        RuntimeError: if REDIS_URL is not configured
        redis.RedisError: if the server cannot be reached
    """
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        if not settings.REDIS_URL:
            raise RuntimeError("REDIS_URL is not configured")
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_TIMEOUT_SECONDS,
            socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
            retry_on_timeout=True,
        )
        client.ping()
        logger.info("Redis connected for the month events cache")
        _redis_client = client
    return _redis_client


def months_between(start: datetime, end: datetime) -> Iterator[Tuple[int, int]]:
    """(year, month) pairs touched by [start, end]."""
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        yield year, month
        month += 1
        if month == 13:
            year, month = year + 1, 1


def cache_key(coach_id: str, year: int, month: int) -> str:
    return f"{KEY_PREFIX}:{coach_id}:{year}:{month}"


class MonthEventsCache:
    def __init__(
        self,
        ttl_seconds: int = 300,
        client_factory: Callable[[], redis.Redis] = get_redis_client,
    ):
        self.ttl_seconds = ttl_seconds
        self._client_factory = client_factory
        self._client: Optional[redis.Redis] = None
        self._unavailable = False

    def _get_client(self) -> Optional[redis.Redis]:
        """Lazy load the Redis client; None once it is known to be missing."""
        if self._client is None and not self._unavailable:
            try:
                self._client = self._client_factory()
            except (RuntimeError, redis.RedisError) as e:
                self._unavailable = True
                logger.warning(f"Month events cache disabled: {e}")
        return self._client

    def get(self, coach_id: str, year: int, month: int) -> Optional[List[Dict[str, Any]]]:
        client = self._get_client()
        if client is None:
            return None

        key = cache_key(coach_id, year, month)
        try:
            value = client.get(key)
        except redis.RedisError as e:
            logger.error(f"Cache get error for {key}: {e}")
            return None
        if value is None:
            logger.debug(f"Cache MISS: {key}")
            return None
        logger.debug(f"Cache HIT: {key}")
        return json.loads(value)

    def set(self, coach_id: str, year: int, month: int, value: List[Dict[str, Any]]) -> bool:
        client = self._get_client()
        if client is None:
            return False

        key = cache_key(coach_id, year, month)
        try:
            client.setex(key, self.ttl_seconds, json.dumps(value))
        except redis.RedisError as e:
            logger.error(f"Cache set error for {key}: {e}")
            return False
        logger.debug(f"Cache SET: {key} (TTL: {self.ttl_seconds}s)")
        return True

    def get_or_load(
        self,
        coach_id: str,
        year: int,
        month: int,
        loader: Callable[[], List[Dict[str, Any]]],
    ) -> List[Dict[str, Any]]:
        cached = self.get(coach_id, year, month)
        if cached is not None:
            return cached
        value = loader()
        self.set(coach_id, year, month, value)
        return value

    def invalidate(self, coach_id: str, year: int, month: int) -> None:
        client = self._get_client()
        if client is None:
            return

        key = cache_key(coach_id, year, month)
        try:
            if client.delete(key):
                logger.debug(f"Cache DELETE: {key}")
        except redis.RedisError as e:
            logger.error(f"Cache delete error for {key}: {e}")

    def invalidate_interval(self, coach_id: str, start: datetime, end: datetime) -> None:
        """Drop every month of the coach's calendar that [start, end] touches."""
        for year, month in months_between(start, end):
            self.invalidate(coach_id, year, month)

    def clear(self) -> int:
        """Drop every cached month. Returns how many keys were deleted."""
        client = self._get_client()
        if client is None:
            return 0
        try:
            keys = list(client.scan_iter(match=f"{KEY_PREFIX}:*"))
            return client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Cache clear error: {e}")
            return 0
