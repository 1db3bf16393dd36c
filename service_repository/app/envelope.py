"""
Result envelope shared by every public repository operation.

Callers always receive ``Result(status, data)``: ``data`` is the payload when
``status`` is true and the causal exception otherwise. ``fail`` notifies the
injected logger collaborator as a side effect.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from shared.logging import get_logger
from .awaitables import maybe_await

logger = get_logger("repository.envelope")


@dataclass(frozen=True)
class Result:
    """Uniform ``{status, data}`` result."""

    status: bool
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "data": self.data}

    @staticmethod
    def is_envelope(value: Any) -> bool:
        """True for a ``Result`` or a mapping shaped like one."""
        if isinstance(value, Result):
            return True
        return (
            isinstance(value, Mapping)
            and isinstance(value.get("status"), bool)
            and "data" in value
        )

    @classmethod
    def coerce(cls, value: Any) -> "Result":
        """Wrap bare values as success; pass envelopes through."""
        if isinstance(value, Result):
            return value
        if cls.is_envelope(value):
            return cls(status=value["status"], data=value["data"])
        return cls(status=True, data=value)


def ok(data: Any = None) -> Result:
    return Result(status=True, data=data)


def fail(err: Any, context: str) -> Result:
    """Notify the logger collaborator, then wrap ``err`` as a failure."""
    from .context import get_context

    sink = get_context().logger
    try:
        sink(err, context)
    except Exception as exc:
        logger.warning("Logger collaborator raised", context=context, error=str(exc))
    return Result(status=False, data=err)


async def safe_call(
    fn: Union[str, Callable[..., Any]],
    *args: Any,
    operations: Optional[Mapping[str, Callable[..., Any]]] = None,
    **kwargs: Any
) -> Result:
    """Run ``fn`` (or the operation named ``fn``) and always return an envelope."""
    try:
        func = fn if callable(fn) else (operations or {}).get(fn)
        if not callable(func):
            return fail(LookupError(f'Function "{fn}" not found'), f"safe_query/{fn}")

        return Result.coerce(await maybe_await(func(*args, **kwargs)))

    except Exception as exc:
        return fail(exc, "safe_query")
