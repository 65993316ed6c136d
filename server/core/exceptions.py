"""Application exception hierarchy.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer renders it with.
"""

from typing import List, Optional


class JetVeinError(Exception):
    """Base exception for all application errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[List[str]] = None):
        self.message = message
        if code:
            self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ConfigurationError(JetVeinError):
    """A required setting (store URL, database URL) is missing."""

    status_code = 500
    code = "CONFIG_ERROR"


class StoreUnavailableError(JetVeinError):
    """The key-value store refused, timed out or spoke garbage."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


class CacheWriteError(JetVeinError):
    """An explicit cache write did not happen; the value is NOT cached."""

    status_code = 503
    code = "CACHE_WRITE_FAILED"


class ValidationFailed(JetVeinError):
    """Request payload rejected before anything was applied."""

    status_code = 400
    code = "VALIDATION_ERROR"


class ConflictError(JetVeinError):
    """Resource already exists."""

    status_code = 409
    code = "CONFLICT"


class AuthenticationFailed(JetVeinError):
    """Missing, invalid or expired session, or wrong credentials."""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(JetVeinError):
    status_code = 404
    code = "NOT_FOUND"
