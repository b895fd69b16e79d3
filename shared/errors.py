"""
Shared error handling for the SRS Rules Proxy.

Every failure a request can hit is a ``RuleProxyException``. The base
service renders them with ``to_response()``, so the wire body is always
``{"status": ...}`` plus an ``error`` detail where the caller gets one.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    status: str
    error: Optional[str] = None


class RuleProxyException(Exception):
    """Base exception for the rules proxy."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        self.error = error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(status=self.message, error=self.error)

    def to_content(self) -> Dict[str, Any]:
        """JSON body for the error response."""
        return self.to_response().model_dump(exclude_none=True)


class ValidationError(RuleProxyException):
    """Missing or malformed request fields."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class DatabaseError(RuleProxyException):
    """Connection, authentication or query failure."""

    status_code = 500

    def __init__(self, error: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("DATABASE_ERROR", "DB error", details, error=error)


class LookupTimeoutError(RuleProxyException):
    """The database did not answer before the lookup deadline."""

    status_code = 504

    def __init__(self, timeout: float, details: Optional[Dict[str, Any]] = None):
        self.timeout = timeout
        super().__init__(
            "LOOKUP_TIMEOUT",
            "DB timeout",
            details,
            error=f"Rule lookup exceeded {timeout:g}s deadline",
        )


class ResourceReleaseError(RuleProxyException):
    """Closing a database connection failed. Logged, never rendered."""

    def __init__(self, error: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("RESOURCE_RELEASE_ERROR", "Error closing connection", details, error=error)
