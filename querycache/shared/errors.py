"""
Shared error handling for querycache.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class QueryCacheException(Exception):
    """Base exception for querycache."""

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


class KeyEncodingError(QueryCacheException):
    """Query key cannot be encoded into its canonical form."""

    def __init__(self, message: str = "Query key is not serializable", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_ENCODING_ERROR", message, details)


class QueryCancelledError(QueryCacheException):
    """A query computation observed a cancelled token."""

    def __init__(self, message: str = "Query cancelled", details: Optional[Dict[str, Any]] = None):
        super().__init__("QUERY_CANCELLED", message, details)


class ExternalServiceError(QueryCacheException):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
