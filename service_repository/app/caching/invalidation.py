"""
Explicit cache invalidation by exact key and by key prefix.
"""

from typing import Any, List, Mapping, Tuple

from shared.errors import ValidationError
from shared.logging import get_logger
from ..awaitables import maybe_await
from ..context import get_context
from ..envelope import Result, fail, ok

logger = get_logger("repository.cache.invalidation")


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _split_input(target: Any) -> Tuple[List[str], List[str]]:
    if isinstance(target, (str, list, tuple, set, frozenset)):
        return _as_list(target), []
    if isinstance(target, Mapping):
        return _as_list(target.get("keys")), _as_list(target.get("prefixes"))
    raise ValidationError(
        "Invalidation input must be a key, a list of keys or {keys, prefixes}",
        {"type": type(target).__name__}
    )


async def invalidate_cache(target: Any = None) -> Result:
    """Delete exact ``keys`` and every key starting with one of ``prefixes``.

    Returns ``{"invalidated": n}``. A key matched both exactly and by prefix
    is counted twice.
    """
    try:
        if not target:
            return ok({"invalidated": 0})

        keys, prefixes = _split_input(target)
        context = get_context()
        cache = context.cache
        count = 0

        prefixes = [p for p in prefixes if p]
        # Key space is read before any delete so both passes see the same keys.
        all_keys = list(await maybe_await(cache.keys()) or []) if prefixes else []

        for key in dict.fromkeys(k for k in keys if k):
            try:
                await maybe_await(cache.delete(key))
                count += 1
            except Exception as exc:
                logger.debug("Cache delete failed", key=key, error=str(exc))

        for prefix in prefixes:
            for key in all_keys:
                if str(key).startswith(prefix):
                    try:
                        await maybe_await(cache.delete(key))
                        count += 1
                    except Exception as exc:
                        logger.debug("Cache delete failed", key=key, prefix=prefix, error=str(exc))

        context.metrics.record_invalidations(count)
        logger.debug("Cache invalidated", invalidated=count, keys=len(keys), prefixes=len(prefixes))
        return ok({"invalidated": count})

    except Exception as exc:
        return fail(exc, "invalidate_cache")
