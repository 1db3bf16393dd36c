"""
Process-wide configuration point for the repository layer.

The cache adapter, logger collaborator, document store and metrics recorder
are set explicitly through the setters below; nothing is auto-discovered.
``reset_context`` restores the defaults so tests start from a clean slate.
"""

from typing import Any, Callable, Optional

from shared.logging import get_logger
from shared.metrics import MetricsRecorder, get_metrics_recorder
from .caching.adapters import NoopCacheAdapter, coerce_adapter

LoggerSink = Callable[[Any, str], None]


def _noop_logger(error: Any, context: str) -> None:
    return None


class RepositoryContext:
    """Shared collaborators for caching, invalidation and store operations."""

    def __init__(self, metrics: Optional[MetricsRecorder] = None):
        self.cache: Any = NoopCacheAdapter()
        self.logger: LoggerSink = _noop_logger
        self.store: Any = None
        self.metrics = metrics or get_metrics_recorder()
        self._log = get_logger("repository.context")

    def set_cache(self, adapter: Any) -> Any:
        """Install ``adapter``; anything without a callable ``get`` means no cache."""
        self.cache = coerce_adapter(adapter)
        if isinstance(self.cache, NoopCacheAdapter) and adapter is not None:
            self._log.warning("Rejected cache adapter without callable get", adapter=type(adapter).__name__)
        return self.cache

    def set_logger(self, sink: Any) -> LoggerSink:
        self.logger = sink if callable(sink) else _noop_logger
        return self.logger

    def set_store(self, store: Any) -> Any:
        self.store = store
        return self.store

    def reset(self) -> None:
        self.cache = NoopCacheAdapter()
        self.logger = _noop_logger
        self.store = None
        self.metrics.reset()


_context: Optional[RepositoryContext] = None


def get_context() -> RepositoryContext:
    """Get the process-wide repository context."""
    global _context
    if _context is None:
        _context = RepositoryContext()
    return _context


def reset_context() -> RepositoryContext:
    """Restore default collaborators and zero the metrics."""
    context = get_context()
    context.reset()
    return context
