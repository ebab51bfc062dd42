"""
Domain exceptions for the report lifecycle.

Each exception carries the HTTP status code the API answers with, so routes
can let them propagate to the exception handler registered in main.py.
"""
from typing import Optional


class MosquitoAlertError(Exception):
    """Base class for all expected domain failures."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MosquitoAlertError):
    """Missing or malformed input. Raised before any mutation."""
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UnauthorizedError(MosquitoAlertError):
    status_code = 401


class ForbiddenError(MosquitoAlertError):
    status_code = 403


class NotFoundError(MosquitoAlertError):
    status_code = 404


class LedgerError(NotFoundError):
    """The account a point delta targets does not exist."""


class RejectedTransition(MosquitoAlertError):
    """Target status is unknown, unchanged, or not reachable from the current one."""
    status_code = 409


class GatewayFailure(MosquitoAlertError):
    """The AI classification service was unreachable, timed out, or answered garbage."""
    status_code = 502


class StorageError(MosquitoAlertError):
    """Raised when the image host rejects or fails an operation."""
    status_code = 502
