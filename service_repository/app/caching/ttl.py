"""
TTL normalization to integer milliseconds.
"""

import math
import re
from typing import Any, Optional

from shared.config import get_config

DEFAULT_TTL_MS = 60_000

TTL_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)?$", re.IGNORECASE | re.ASCII)

UNIT_MULTIPLIERS = {
    "ms": 1,
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def normalize_ttl(ttl: Any, default: Optional[int] = None) -> int:
    """Normalize ``ttl`` to milliseconds.

    Numbers are milliseconds, clamped at 0. Strings follow
    ``<int>[ms|s|m|h|d]`` (unit defaults to ms). Anything else falls back
    to the configured default TTL.
    """
    fallback = get_config().default_ttl_ms if default is None else default

    if isinstance(ttl, bool):
        return fallback

    if isinstance(ttl, (int, float)):
        if not math.isfinite(ttl):
            return fallback
        return max(0, int(ttl))

    if isinstance(ttl, str):
        match = TTL_PATTERN.match(ttl.strip())
        if not match:
            return fallback
        unit = (match.group(2) or "ms").lower()
        return int(match.group(1)) * UNIT_MULTIPLIERS[unit]

    return fallback
