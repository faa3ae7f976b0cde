"""
Exception taxonomy for the pacing engine.

Every error surfaced to callers derives from PacingError and carries a
machine-readable kind, an HTTP-equivalent status code and a message that is
safe to show to users. Warehouse internals never travel in that message; the
underlying exception is chained instead.
"""

from typing import Any, Dict, Optional


class PacingError(Exception):
    """Base exception for pacing engine errors."""

    kind: str = 'internal_error'
    status_code: int = 500
    default_message: str = 'Internal server error'

    def __init__(self, message: Optional[str] = None, request_id: Optional[str] = None):
        self.message = message or self.default_message
        self.request_id = request_id
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        """Structured error body used by the HTTP layer."""
        detail: Dict[str, Any] = {
            'ok': False,
            'error': self.kind,
            'message': self.message,
        }
        if self.request_id:
            detail['requestId'] = self.request_id
        return detail


class ValidationError(PacingError):
    """Malformed request: missing campaign id, empty or invalid line item ids, bad dates."""

    kind = 'validation_error'
    status_code = 400
    default_message = 'Invalid request'

    def __init__(self, message: str, field: Optional[str] = None, request_id: Optional[str] = None):
        self.field = field
        super().__init__(message, request_id=request_id)


class WarehouseTimeoutError(PacingError, TimeoutError):
    """The delivery fetch exceeded its deadline or was cancelled by the caller."""

    kind = 'timeout'
    status_code = 504
    default_message = 'Timed out'

    def __init__(
        self,
        message: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
        request_id: Optional[str] = None,
    ):
        self.deadline_seconds = deadline_seconds
        super().__init__(message, request_id=request_id)


class QueryError(PacingError):
    """The warehouse query failed after all retry attempts."""

    kind = 'query_error'
    status_code = 502
    default_message = 'Delivery data is temporarily unavailable'

    def __init__(
        self,
        message: Optional[str] = None,
        attempts: int = 1,
        request_id: Optional[str] = None,
    ):
        self.attempts = attempts
        super().__init__(message, request_id=request_id)


class ConfigurationError(PacingError):
    """A collaborator required by the request is not configured."""

    kind = 'configuration_error'
    status_code = 500
    default_message = 'Service is not configured'


class NotFoundError(PacingError):
    """The requested campaign or plan does not exist."""

    kind = 'not_found'
    status_code = 404
    default_message = 'Not found'
