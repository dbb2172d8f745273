"""
Shared error handling for the table data source service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class DataSourceException(Exception):
    """Base exception for data source services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidQueryError(DataSourceException):
    """A query description that cannot be turned into a QueryState."""

    def __init__(self, message: str = "Invalid query", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_QUERY", message, details)


class TransportError(DataSourceException):
    """Remote call rejected or remote host unreachable.

    ``user_message`` is the short text shown to the person looking at the
    table; ``message`` keeps the technical reason for logs.
    """

    def __init__(
        self,
        message: str = "Transport failure",
        *,
        status_code: Optional[int] = None,
        user_message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.user_message = user_message
        super().__init__("TRANSPORT_ERROR", message, details)


class MalformedResponseError(DataSourceException):
    """Remote payload whose shape is not recognised."""

    def __init__(self, message: str = "Unexpected response format", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_RESPONSE", message, details)
