"""
Stable serialization for cache-key derivation.

Two deeply-equal values serialize to the same string regardless of mapping
insertion order. Cycles collapse to ``CYCLE_TOKEN``, so distinct cyclic graphs
can serialize identically; output only feeds cache keys, never storage.
"""

import base64
import dataclasses
import datetime
import decimal
import enum
import json
import re
import uuid
from typing import Any, Mapping

from shared.errors import SerializationError
from .envelope import Result, ok

CYCLE_TOKEN = "__cycle__"

# Integers beyond the IEEE-754 safe range carry a suffix so they never collide
# with an equal-looking float.
_SAFE_INTEGER = 2 ** 53 - 1


def _sort_key(item: Any) -> str:
    if isinstance(item, str):
        return item
    return json.dumps(item, sort_keys=True, default=str)


def _canonical(value: Any, active: set) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value

    if isinstance(value, int) and not isinstance(value, enum.Enum):
        return f"{value}n" if abs(value) > _SAFE_INTEGER else value

    if isinstance(value, float):
        return value if value == value and value not in (float("inf"), float("-inf")) else repr(value)

    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()

    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")

    if isinstance(value, (decimal.Decimal, uuid.UUID)):
        return str(value)

    if isinstance(value, enum.Enum):
        return f"{type(value).__name__}.{value.name}"

    if isinstance(value, re.Pattern):
        return f"/{value.pattern}/"

    if isinstance(value, BaseException):
        return f"{type(value).__name__}:{value}"

    if callable(value) and not isinstance(value, type):
        return f"[Function:{getattr(value, '__name__', None) or 'anonymous'}]"

    if isinstance(value, type):
        return f"[Class:{value.__name__}]"

    marker = id(value)
    if marker in active:
        return CYCLE_TOKEN
    active.add(marker)
    try:
        if dataclasses.is_dataclass(value):
            value = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}

        if isinstance(value, Mapping):
            if all(isinstance(k, str) for k in value):
                return {k: _canonical(value[k], active) for k in sorted(value)}
            # Non-string keys: sorted [key, value] pairs keep 1 and "1" apart.
            pairs = [[_canonical(k, active), _canonical(v, active)] for k, v in value.items()]
            return sorted(pairs, key=lambda pair: _sort_key(pair[0]))

        if isinstance(value, (set, frozenset)):
            return sorted((_canonical(item, active) for item in value), key=_sort_key)

        if isinstance(value, (list, tuple)):
            return [_canonical(item, active) for item in value]

        if hasattr(value, "__dict__"):
            return _canonical(vars(value), active)

        return repr(value)
    finally:
        active.discard(marker)


def stable_serialize(value: Any) -> Result:
    """Canonical JSON string for ``value``; never raises."""
    try:
        return ok(json.dumps(_canonical(value, set()), sort_keys=True, separators=(",", ":")))
    except Exception as exc:
        return Result(status=False, data=SerializationError(str(exc), {"type": type(value).__name__}))
