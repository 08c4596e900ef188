"""
Ledger-specific exceptions for ledger writes, fee resolution, FX and settlement.

All exceptions inherit from the core exception classes so callers can log
them uniformly with `to_dict()`.

Exception Hierarchy:
    LedgerError (base)
    ├── LedgerIntegrityError - Write would break the double-entry invariant
    │   └── FeeInconsistencyError - Legacy fee field disagrees with sibling row
    ├── InsufficientBalance - Expense larger than the collective's balance
    └── SettlementError - Settlement run failures
        ├── PlatformPayoutMethodMissing - Fatal: platform cannot be paid
        └── HostPayoutMethodUnresolved - Per-host payout method failure

    InvalidTransactionDraft (ValidationError) - Malformed draft
    InvalidCurrency (ValidationError) - Unsupported or malformed currency
    CollectiveNotFound (NotFoundError) - Referenced collective missing
    SettlementAlreadyExists (ConflictError) - Host already billed for period
    LockAcquisitionError (ConflictError) - Lease held by another run
    FxRateUnavailable (ExternalServiceError) - FX provider failure

Usage:
    from ledger.exceptions import InsufficientBalance, FxRateUnavailable

    if balance < amount:
        raise InsufficientBalance(collective.id, required=amount, available=balance)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Example:
        try:
            writer.record_economic_event(draft)
        except LedgerError as e:
            logger.error("Ledger write failed", extra=e.to_dict())
    """

    default_error_code: str = "LEDGER_ERROR"


class LedgerIntegrityError(LedgerError):
    """
    Raised when rows about to be written do not balance.

    The whole transaction group is rolled back; nothing is persisted.
    """

    default_error_code: str = "LEDGER_INTEGRITY_ERROR"


class FeeInconsistencyError(LedgerIntegrityError):
    """
    Raised when a transaction's legacy fee field and its sibling fee row
    both exist but carry different amounts.
    """

    default_error_code: str = "FEE_INCONSISTENCY"


class InsufficientBalance(LedgerError):
    """
    Raised when a collective cannot cover an outgoing amount.

    Attributes:
        collective_id: Id of the collective with insufficient funds
        required: Amount required (minor units, collective currency)
        available: Balance available (minor units, collective currency)
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        collective_id: int,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.collective_id = collective_id
        self.required = required
        self.available = available

        message = (
            f"Collective {collective_id} has insufficient balance: "
            f"required {required}, available {available}"
        )

        full_details = {
            "collective_id": collective_id,
            "required": required,
            "available": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=message,
            error_code=error_code,
            details=full_details,
        )


class SettlementError(LedgerError):
    """Base exception for settlement run failures."""

    default_error_code: str = "SETTLEMENT_ERROR"


class PlatformPayoutMethodMissing(SettlementError):
    """
    Raised when the platform has no payout method at all.

    Every settlement expense would be unpayable, so the whole run aborts.
    """

    default_error_code: str = "PLATFORM_PAYOUT_METHOD_MISSING"


class HostPayoutMethodUnresolved(SettlementError):
    """Raised when no payout method can be chosen for one host's expense."""

    default_error_code: str = "HOST_PAYOUT_METHOD_UNRESOLVED"


class InvalidTransactionDraft(ValidationError):
    """Raised when a transaction draft is malformed (amounts, parties, kind)."""

    default_error_code: str = "INVALID_TRANSACTION_DRAFT"


class InvalidCurrency(ValidationError):
    """Raised for a currency code the ledger does not accept."""

    default_error_code: str = "INVALID_CURRENCY"


class CollectiveNotFound(NotFoundError):
    default_error_code: str = "COLLECTIVE_NOT_FOUND"


class SettlementAlreadyExists(ConflictError):
    """Raised when a host already has a settlement expense for the period."""

    default_error_code: str = "SETTLEMENT_ALREADY_EXISTS"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process holds the lease, typically a concurrent settlement run
    working on the same host and period.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class FxRateUnavailable(ExternalServiceError):
    """
    Raised when an FX rate cannot be obtained.

    Never replaced by a default rate: a wrong rate would corrupt every
    figure computed from it.
    """

    default_error_code: str = "FX_RATE_UNAVAILABLE"
