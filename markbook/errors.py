"""
Markbook error types.

Local errors (ValidationError) are raised before any network call.
Remote errors (APIError and subclasses) carry the HTTP status when known.
"""


class MarkbookError(Exception):
    """Base class for all markbook errors."""


class ValidationError(MarkbookError):
    """Input rejected locally: out of range, non-numeric, or a required field is empty."""


class APIError(MarkbookError):
    """Non-2xx response or unusable body from the markbook API."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(APIError):
    """The request never produced a response."""


class AuthError(APIError):
    """The bearer token was rejected (HTTP 401)."""

    def __init__(self, message="Authentication failed. Please login again."):
        super().__init__(message, status_code=401)


class ConflictError(APIError):
    """A business-rule conflict, e.g. a score already exists for the pair."""

    def __init__(self, message):
        super().__init__(message, status_code=409)


class NotFoundError(APIError):
    def __init__(self, message):
        super().__init__(message, status_code=404)
