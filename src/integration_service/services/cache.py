"""Key/value caches with per-entry TTL.

``MemoryCache`` serves a single process and tests; ``RedisCache`` is shared
by every worker and web process pointing at the same Redis.
"""
from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from typing import Any, Protocol

import structlog
from redis import asyncio as aioredis

from integration_service.core.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class Cache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None: ...


class MemoryCache:
    """Process-local cache; expiry is evaluated against the injected clock."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._store: dict[str, tuple[Any, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock.now() >= expires_at:
                del self._store[key]
                return None
            return value

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            if ttl_seconds <= 0:
                # A zero TTL means "do not keep"; drop any stale entry as well.
                self._store.pop(key, None)
                return
            self._store[key] = (value, self._clock.now() + timedelta(seconds=ttl_seconds))

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()


class RedisCache:
    """JSON values in Redis under a common key prefix."""

    def __init__(self, client: aioredis.Redis, *, prefix: str = "trip-planner:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "trip-planner:") -> "RedisCache":
        return cls(aioredis.Redis.from_url(url, decode_responses=True), prefix=prefix)

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(self._prefix + key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("cache entry is not valid JSON, ignoring", key=key)
            return None

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            await self._client.delete(self._prefix + key)
            return
        await self._client.set(self._prefix + key, json.dumps(value), ex=ttl_seconds)

    async def close(self, _app: Any = None) -> None:
        await self._client.aclose()
