"""
Shared error handling for the Todo service.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    details: Optional[str] = None

    def to_content(self) -> Dict[str, Any]:
        """Serialize for a JSON response, omitting empty details."""
        return self.model_dump(exclude_none=True)


class TodoServiceException(Exception):
    """Base exception for the Todo service."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(error=self.message, details=self.details)


class ValidationError(TodoServiceException):
    """Client supplied an invalid payload or identifier."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[str] = None):
        super().__init__(message, details)


class NotFoundError(TodoServiceException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, message: str = "Todo not found", details: Optional[str] = None):
        super().__init__(message, details)


class StorageError(TodoServiceException):
    """Persistence layer failure."""

    status_code = 500

    def __init__(self, message: str = "Storage error", details: Optional[str] = None):
        super().__init__(message, details)


class CacheError(TodoServiceException):
    """Cache operation failure. Never surfaced to clients."""

    def __init__(self, message: str = "Cache error", details: Optional[str] = None):
        super().__init__(message, details)


class EventPublishError(TodoServiceException):
    """Event transport failure. Never surfaced to clients."""

    def __init__(self, message: str = "Event publish error", details: Optional[str] = None):
        super().__init__(message, details)
