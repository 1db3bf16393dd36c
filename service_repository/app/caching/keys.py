"""
Deterministic cache keys: ``"{op_name}:{entity}:{hash(serialize(args[1:]))}"``.
"""

import string
from typing import Any, Sequence

from shared.errors import ValidationError
from ..envelope import Result, ok
from ..serialization import stable_serialize

_BASE36 = string.digits + string.ascii_lowercase
_HASH_SEED = 5381


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def hash_string(text: str) -> str:
    """djb2-xor over UTF-16 code units, unsigned 32-bit, base-36 encoded."""
    encoded = text.encode("utf-16-le", "surrogatepass")
    h = _HASH_SEED
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h * 33) & 0xFFFFFFFF) ^ code_unit
    return _base36(h)


def build_cache_key(op_name: str, args: Sequence[Any]) -> Result:
    """Build the cache key for ``op_name`` called with ``args``.

    ``args[0]`` is the entity identifier and must be a string.
    """
    args = list(args or [])
    if not args or not isinstance(args[0], str):
        return Result(
            status=False,
            data=ValidationError(
                "Cache key requires an entity name as first argument",
                {"op_name": op_name, "entity_type": type(args[0]).__name__ if args else None}
            )
        )

    serialized = stable_serialize(args[1:])
    if not serialized.status:
        return serialized

    return ok(f"{op_name}:{args[0]}:{hash_string(serialized.data)}")
