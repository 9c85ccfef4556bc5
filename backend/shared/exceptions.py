"""
Base exception classes for the billing ledger.

Each module should define its own exceptions that inherit from these bases.
This enables consistent error handling across the application.
"""

from typing import Optional, Any


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(LedgerError):
    """Resource not found (or not visible to the caller's tenant)."""

    pass


class ValidationError(LedgerError):
    """
    Input validation failed.

    When the offending field is known it is kept on ``field`` and
    in ``details["field"]`` so callers can point at it.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.field = field
        if field is not None:
            self.details["field"] = field


class ConflictError(LedgerError):
    """A write was rejected because the stored record changed underneath it."""

    pass


class ExternalServiceError(LedgerError):
    """Error communicating with an external service."""

    def __init__(
        self,
        message: str,
        service: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, details)
        self.service = service
        self.details["service"] = service
