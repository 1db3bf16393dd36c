"""
Shared error handling for the repository cache layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RepositoryException(Exception):
    """Base exception for the repository layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(RepositoryException):
    """Malformed caller input (entity id, filter, payload)."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ResolutionError(RepositoryException):
    """Target entity could not be located."""

    def __init__(self, entity: str, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        super().__init__(
            "RESOLUTION_ERROR",
            message or f'Entity "{entity}" not found',
            {"entity": entity, **(details or {})}
        )


class SerializationError(RepositoryException):
    """Cache key construction failed."""

    def __init__(self, message: str = "Serialization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERIALIZATION_ERROR", message, details)


class TransactionError(RepositoryException):
    """Transaction scope could not be opened or the body failed."""

    def __init__(self, message: str = "Transaction failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("TRANSACTION_ERROR", message, details)


class RetryLimitExceeded(RepositoryException):
    """Hard attempt ceiling or wall-clock deadline reached."""

    def __init__(
        self,
        attempts: int,
        elapsed_ms: float,
        last_exception: Optional[BaseException] = None,
        message: Optional[str] = None
    ):
        self.attempts = attempts
        self.elapsed_ms = elapsed_ms
        self.last_exception = last_exception
        super().__init__(
            "RETRY_LIMIT_EXCEEDED",
            message or f"Retry limit exceeded after {attempts} attempts ({elapsed_ms:.0f} ms)",
            {
                "attempts": attempts,
                "elapsed_ms": round(elapsed_ms, 3),
                "last_error": str(last_exception) if last_exception is not None else None,
            }
        )


class CacheAdapterError(RepositoryException):
    """Cache backend errors."""

    def __init__(self, message: str = "Cache adapter error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ADAPTER_ERROR", message, details)
