"""
Flexible write argument parsing.

Write operations take one optional trailing argument that may be:

- a key or list of keys            -> ``invalidate_keys``
- store options at the top level   -> ``options`` (``{"session": s, "upsert": True}``)
- a combined mapping               -> ``{"options": {...}, "invalidate_keys": ..., "invalidate_prefixes": ...}``

Precedence when a mapping is ambiguous: a nested ``options`` mapping always
wins; otherwise, if any recognized option key is present at the top level,
the mapping itself becomes ``options`` with the invalidation fields removed.
"""

from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

KeySpec = Union[str, List[str]]

OPTION_KEYS = frozenset({
    "session",
    "upsert",
    "write_concern",
    "writeConcern",
    "run_validators",
    "runValidators",
})

_INVALIDATE_KEYS = ("invalidate_keys", "invalidateKeys")
_INVALIDATE_PREFIXES = ("invalidate_prefixes", "invalidatePrefixes")
_INVALIDATION_FIELDS = frozenset(_INVALIDATE_KEYS + _INVALIDATE_PREFIXES)
_NON_OPTION_FIELDS = _INVALIDATION_FIELDS | {"options"}


class WriteArgs(NamedTuple):
    options: Optional[Dict[str, Any]] = None
    invalidate_keys: Optional[KeySpec] = None
    invalidate_prefixes: Optional[KeySpec] = None

    @property
    def has_invalidation(self) -> bool:
        return bool(self.invalidate_keys or self.invalidate_prefixes)


def _first_present(arg: Mapping[str, Any], names) -> Any:
    for name in names:
        if name in arg:
            return arg[name]
    return None


def parse_write_arg(arg: Any = None) -> WriteArgs:
    """Split ``arg`` into ``(options, invalidate_keys, invalidate_prefixes)``."""
    if not arg:
        return WriteArgs()

    if isinstance(arg, WriteArgs):
        return arg

    if isinstance(arg, (str, list, tuple)):
        return WriteArgs(invalidate_keys=arg if isinstance(arg, str) else list(arg))

    if not isinstance(arg, Mapping):
        return WriteArgs()

    invalidate_keys = _first_present(arg, _INVALIDATE_KEYS)
    invalidate_prefixes = _first_present(arg, _INVALIDATE_PREFIXES)

    options = None
    if isinstance(arg.get("options"), Mapping):
        options = dict(arg["options"])
    elif OPTION_KEYS.intersection(arg):
        options = {k: v for k, v in arg.items() if k not in _NON_OPTION_FIELDS}

    return WriteArgs(options, invalidate_keys, invalidate_prefixes)
