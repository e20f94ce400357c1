"""
Domain-specific exceptions for relay pagination.

These exceptions represent caller-contract violations and execution failures.
They are mapped to HTTP status codes for whichever transport layer hosts the
pagination core.
"""

from typing import Any


class RelayPaginationError(Exception):
    """Base exception for all relay pagination errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(RelayPaginationError):
    """
    Raised when caller input fails validation.

    HTTP Status: 400 Bad Request
    """

    pass


class InvalidCursorError(ValidationError, ValueError):
    """
    Raised when a cursor token cannot be decoded.

    Examples:
    - Not valid URL-safe base64
    - Payload is not the expected JSON structure
    - Unknown typed value tag
    - Value count does not match the ordering it is used with

    Never treated as "no cursor".

    HTTP Status: 400 Bad Request
    """

    pass


class InvalidPaginationArgsError(ValidationError, ValueError):
    """
    Raised when raw Relay arguments do not describe exactly one direction.

    Examples:
    - Both `first` and `last` given
    - Neither `first` nor `last` given
    - `after` combined with `last`, or `before` with `first`
    - Negative or oversized page count

    HTTP Status: 400 Bad Request
    """

    pass


class InvalidOrderByError(ValidationError):
    """
    Raised when an ordering is unusable.

    Examples:
    - Empty ordering

    HTTP Status: 400 Bad Request
    """

    pass


class QueryExecutionError(RelayPaginationError):
    """
    Raised when the page query or the total count query fails.

    The original database exception is chained as __cause__.

    HTTP Status: 500 Internal Server Error
    """

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    InvalidCursorError: 400,
    InvalidPaginationArgsError: 400,
    InvalidOrderByError: 400,
    QueryExecutionError: 500,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    return ERROR_STATUS_MAP.get(type(error), 500)
