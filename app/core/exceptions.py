"""
Base exception classes for application-wide error handling.

Every domain error raised by the ledger and settlement code derives from
BaseApplicationError so callers (Celery tasks, the settlement script, the
admin) can log and serialize failures the same way.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Invalid input (bad currency, negative amount, bad options)
    ├── NotFoundError - Referenced record does not exist
    ├── ConflictError - State conflicts (already invoiced, lock held)
    └── ExternalServiceError - Third-party failures (FX rate provider)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Unknown currency", error_code="INVALID_CURRENCY")

    raise NotFoundError(
        "Collective not found",
        error_code="COLLECTIVE_NOT_FOUND",
        details={"collective_id": 42},
    )

    try:
        ...
    except BaseApplicationError as e:
        logger.warning("Settlement step failed", extra=e.to_dict())
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for log filtering and callers
        details: Additional error context (ids, amounts, currencies)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary.

        Returns:
            Dict with error, error_code and (when present) details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for malformed drafts, unsupported currencies and option
    combinations that cannot be honoured together.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """Raised when a referenced record does not exist."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current state.

    Use for:
    - Work already done for the same key (duplicate settlement)
    - Invalid state transitions
    - Locks held by another process
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Example:
        try:
            response = client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                "FX provider unavailable",
                details={"service": "fixer", "original_error": str(e)},
            )

    Note:
        Financial figures must never be computed from a guessed value,
        so these errors propagate to the caller.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
