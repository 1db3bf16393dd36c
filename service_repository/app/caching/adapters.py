"""
Cache adapters consumed by the cache orchestrator and invalidation engine.

Any object exposing ``get(key)``, ``put(key, value, ttl_ms)``, ``del(key)`` /
``delete(key)`` and ``keys()`` can be injected. Methods may be plain or
coroutine functions; callers always go through ``maybe_await``.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import redis.asyncio as redis

from shared.config import get_config
from shared.errors import CacheAdapterError
from shared.logging import get_logger
from ..envelope import Result


@runtime_checkable
class CacheAdapter(Protocol):
    """Capability set every cache backend satisfies."""

    def get(self, key: str) -> Any: ...

    def put(self, key: str, value: Any, ttl_ms: int) -> Any: ...

    def delete(self, key: str) -> Any: ...

    def keys(self) -> Sequence[str]: ...


class NoopCacheAdapter:
    """Stands in whenever no usable adapter is configured."""

    def get(self, key: str) -> None:
        return None

    def put(self, key: str, value: Any, ttl_ms: int) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def keys(self) -> List[str]:
        return []


class _ForeignAdapter:
    """Wraps third-party caches: ``del`` spelling, missing optional methods."""

    def __init__(self, target: Any):
        self.target = target
        self._put = getattr(target, "put", None)
        self._delete = getattr(target, "delete", None) or getattr(target, "del", None)
        self._keys = getattr(target, "keys", None)

    def get(self, key: str) -> Any:
        return self.target.get(key)

    def put(self, key: str, value: Any, ttl_ms: int) -> Any:
        return self._put(key, value, ttl_ms) if callable(self._put) else None

    def delete(self, key: str) -> Any:
        return self._delete(key) if callable(self._delete) else None

    def keys(self) -> Any:
        return self._keys() if callable(self._keys) else []


def coerce_adapter(candidate: Any) -> Any:
    """Return a usable adapter for ``candidate``, or the no-op adapter.

    Only a callable ``get`` is required; missing ``put``/``del``/``keys`` are
    tolerated so read-only caches still serve hits.
    """
    if candidate is None or not callable(getattr(candidate, "get", None)):
        return NoopCacheAdapter()

    if isinstance(candidate, (NoopCacheAdapter, MemoryCacheAdapter, RedisCacheAdapter, _ForeignAdapter)):
        return candidate

    return _ForeignAdapter(candidate)


class MemoryCacheAdapter:
    """In-process dict cache with per-entry expiry."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._expired(expires_at):
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any, ttl_ms: Optional[int] = None) -> None:
        if ttl_ms is not None and ttl_ms <= 0:
            self._entries.pop(key, None)
            return
        expires_at = None if ttl_ms is None else self._clock() + ttl_ms / 1000.0
        self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def keys(self) -> List[str]:
        for key in [k for k, (_, exp) in self._entries.items() if self._expired(exp)]:
            del self._entries[key]
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self.keys())


class RedisCacheAdapter:
    """Async adapter storing envelopes as JSON in Redis."""

    def __init__(self, redis_url: Optional[str] = None, namespace: Optional[str] = None):
        config = get_config()
        self.redis_url = redis_url or config.redis_url
        self.namespace = config.cache_namespace if namespace is None else namespace
        self.logger = get_logger("repository.cache.redis")
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url, decode_responses=True)
        return self._redis

    async def start(self) -> None:
        """Connect and verify the server answers."""
        try:
            redis_client = await self._get_redis()
            await redis_client.ping()
            self.logger.info("Redis cache adapter started", namespace=self.namespace)
        except Exception as e:
            self.logger.error("Failed to start Redis cache adapter", error=str(e))
            raise CacheAdapterError("Failed to connect to Redis", {"error": str(e)}) from e

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    @staticmethod
    def _encode(value: Any) -> str:
        if isinstance(value, Result):
            value = value.to_dict()
        return json.dumps(value, default=str)

    @staticmethod
    def _decode(raw: Any) -> Any:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return Result.coerce(json.loads(raw))

    async def get(self, key: str) -> Any:
        redis_client = await self._get_redis()
        return self._decode(await redis_client.get(self._make_key(key)))

    async def put(self, key: str, value: Any, ttl_ms: int) -> None:
        redis_client = await self._get_redis()
        if ttl_ms is not None and ttl_ms <= 0:
            await redis_client.delete(self._make_key(key))
            return
        await redis_client.set(self._make_key(key), self._encode(value), px=ttl_ms)
        self.logger.debug("Cached value", key=key, ttl_ms=ttl_ms)

    async def delete(self, key: str) -> None:
        redis_client = await self._get_redis()
        await redis_client.delete(self._make_key(key))

    async def keys(self) -> List[str]:
        redis_client = await self._get_redis()
        prefix_len = len(self.namespace)
        found = []
        async for raw_key in redis_client.scan_iter(match=f"{self.namespace}*"):
            if isinstance(raw_key, bytes):
                raw_key = raw_key.decode("utf-8")
            found.append(raw_key[prefix_len:])
        return found

    async def stop(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.close()
            self._redis = None
            self.logger.info("Redis cache adapter stopped")
