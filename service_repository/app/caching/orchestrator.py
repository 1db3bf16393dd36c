"""
Read-through cache orchestration.

Concurrent callers racing on the same key may all miss and all run the
producer; there is no request coalescing.
"""

from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from shared.errors import ValidationError
from shared.logging import get_logger
from ..awaitables import maybe_await
from ..context import get_context
from ..envelope import Result, fail
from .keys import build_cache_key
from .ttl import DEFAULT_TTL_MS, normalize_ttl

logger = get_logger("repository.cache")

Producer = Callable[[], Union[Any, Awaitable[Any]]]


def cache_successes(result: Result) -> bool:
    return isinstance(result, Result) and result.status is True


class CacheOptions(BaseModel):
    """Per-call cache options."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = True
    key: Optional[str] = None
    ttl: Any = DEFAULT_TTL_MS
    cache_if: Callable[[Result], bool] = Field(default=cache_successes, alias="cacheIf")

    @classmethod
    def coerce(cls, value: Any) -> Optional["CacheOptions"]:
        """Accept ``None``, a ``CacheOptions`` or a plain mapping."""
        if value is None or isinstance(value, CacheOptions):
            return value
        if isinstance(value, Mapping):
            return cls.model_validate(dict(value))
        raise ValidationError(
            "Cache options must be a mapping",
            {"type": type(value).__name__}
        )


async def _produce(op_name: str, producer: Producer) -> Result:
    try:
        return Result.coerce(await maybe_await(producer()))
    except Exception as exc:
        return fail(exc, f"with_cache/{op_name}")


def _should_cache(options: CacheOptions, result: Result, key: str) -> bool:
    try:
        return bool(options.cache_if(result))
    except Exception as exc:
        logger.warning("cache_if predicate raised; not caching", key=key, error=str(exc))
        return False


async def with_cache(
    op_name: str,
    args: Sequence[Any],
    cache_opts: Any,
    producer: Producer
) -> Result:
    """Serve ``producer``'s envelope through the configured cache adapter."""
    try:
        options = CacheOptions.coerce(cache_opts) or CacheOptions()
    except Exception as exc:
        return fail(exc, f"with_cache/{op_name}")

    if not options.enabled:
        return await _produce(op_name, producer)

    key = options.key
    if key is None:
        built = build_cache_key(op_name, args)
        if not built.status:
            logger.debug("Cache key unavailable; running uncached", op_name=op_name, error=str(built.data))
            return await _produce(op_name, producer)
        key = built.data

    context = get_context()
    try:
        hit = await maybe_await(context.cache.get(key))
    except Exception as exc:
        logger.warning("Cache fetch error", key=key, error=str(exc))
        hit = None

    if hit is not None:
        context.metrics.record_cache_hit()
        logger.debug("Cache hit", key=key)
        return hit

    context.metrics.record_cache_miss()
    logger.debug("Cache miss", key=key)

    result = await _produce(op_name, producer)
    if _should_cache(options, result, key):
        ttl_ms = normalize_ttl(options.ttl)
        try:
            await maybe_await(context.cache.put(key, result, ttl_ms))
            # A non-positive TTL makes the adapter drop the key instead.
            if ttl_ms > 0:
                context.metrics.record_cache_put()
        except Exception as exc:
            logger.warning("Cache store error", key=key, error=str(exc))

    return result
