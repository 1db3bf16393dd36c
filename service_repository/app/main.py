"""
Admin service for the repository cache layer.

Exposes metrics (snapshot and Prometheus), metrics reset and manual cache
invalidation over HTTP.
"""

from typing import Dict, List, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.errors import RepositoryException
from .caching.invalidation import invalidate_cache
from .context import get_context
from .operations import get_metrics, reset_metrics


class InvalidateRequest(BaseModel):
    """Manual invalidation request body."""

    keys: Optional[Union[str, List[str]]] = None
    prefixes: Optional[Union[str, List[str]]] = None


class RepositoryService(BaseService):
    """Repository admin service implementation."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._setup_repository_routes()

    def _setup_repository_routes(self):
        """Set up repository-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Repository cache layer - Admin Service",
                "version": "1.0.0",
                "capabilities": ["metrics", "invalidation"]
            }

        @self.app.get("/metrics/snapshot")
        async def metrics_snapshot():
            """Cache counters and per-operation latency."""
            return get_metrics().data

        @self.app.post("/metrics/reset")
        async def metrics_reset():
            """Zero all metrics."""
            return reset_metrics().data

        @self.app.post("/cache/invalidate")
        async def cache_invalidate(request: InvalidateRequest):
            """Invalidate cache entries by exact key and/or prefix."""
            result = await invalidate_cache(request.model_dump(exclude_none=True))
            if not result.status:
                if isinstance(result.data, RepositoryException):
                    raise result.data
                raise HTTPException(status_code=500, detail=str(result.data))

            self.logger.info(
                "Manual cache invalidation",
                keys=request.keys,
                prefixes=request.prefixes,
                invalidated=result.data["invalidated"]
            )
            return result.data

    async def _check_dependencies(self) -> Dict[str, str]:
        context = get_context()
        return {
            "cache": type(context.cache).__name__,
            "store": type(context.store).__name__ if context.store is not None else "unconfigured",
        }


def create_app():
    """Create the admin FastAPI application."""
    return RepositoryService().app


if __name__ == "__main__":
    RepositoryService().run()
