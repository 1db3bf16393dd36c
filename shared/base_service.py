"""
Base FastAPI service for the repository layer.
"""

import time
from typing import Dict, Optional, Tuple, Type

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import RepositoryConfig, get_config
from shared.errors import RepositoryException, ResolutionError, ValidationError
from shared.logging import configure_logging, get_logger, set_request_id
from shared.metrics import MetricsRecorder, get_metrics_recorder

# First match wins; anything else is a 500.
ERROR_STATUS: Tuple[Tuple[Type[RepositoryException], int], ...] = (
    (ResolutionError, 404),
    (ValidationError, 400),
)


def status_for(exc: RepositoryException) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


class BaseService:
    """FastAPI app with request logging, /health, /metrics and error mapping."""

    def __init__(
        self,
        service_name: Optional[str] = None,
        config: Optional[RepositoryConfig] = None,
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.config = config or get_config()
        self.service_name = service_name or self.config.service_name
        self.logger = get_logger(self.service_name)
        self.metrics = metrics or get_metrics_recorder()
        self._start_time = time.monotonic()

        configure_logging(self.service_name, self.config.log_level)

        self.app = FastAPI(title=f"{self.service_name.title()} Service")
        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self):
        @self.app.middleware("http")
        async def log_request(request: Request, call_next):
            start = time.monotonic()
            set_request_id(request.headers.get("x-request-id"))

            response = await call_next(request)

            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start) * 1000, 2)
            )
            return response

    def _setup_routes(self):
        @self.app.get("/health")
        async def health_check():
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            return {
                "service": self.service_name,
                "status": "ok",
                "uptime_seconds": time.monotonic() - self._start_time,
                "dependencies": dependencies,
            }

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus exposition of the repository metrics."""
            return Response(content=self.metrics.export_prometheus(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(RepositoryException)
        async def repository_exception_handler(request: Request, exc: RepositoryException):
            self.logger.error("Repository error", code=exc.code, message=exc.message, details=exc.details)
            return JSONResponse(
                status_code=status_for(exc),
                content=exc.to_response().model_dump(mode="json")
            )

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report collaborator state. Override in subclasses."""
        return {}

    def run(self):
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
