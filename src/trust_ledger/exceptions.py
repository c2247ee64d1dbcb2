"""Domain exception hierarchy for Trust Ledger.

All domain-specific exceptions inherit from TrustLedgerError.
This allows catching all ledger errors with a single base class
while preserving specificity for individual error types.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID


class TrustLedgerError(Exception):
    """Base exception for all Trust Ledger errors.

    All domain exceptions should inherit from this class.
    Includes optional error_code for API responses and extra context.
    """

    error_code: str = "TRUST_LEDGER_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(TrustLedgerError):
    """Base exception for missing accounts, transactions and properties."""

    error_code = "NOT_FOUND"
    status_code = 404


class AccountNotFoundError(NotFoundError):
    """Raised when a trust account cannot be found."""

    error_code = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            f"Trust account not found: {account_id}",
            context={"account_id": str(account_id)},
        )


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction cannot be found."""

    error_code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: UUID | str) -> None:
        super().__init__(
            f"Transaction not found: {transaction_id}",
            context={"transaction_id": str(transaction_id)},
        )


class PropertyNotFoundError(NotFoundError):
    """Raised when a property has no trust accounts to report on."""

    error_code = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: UUID | str) -> None:
        super().__init__(
            f"No trust accounts found for property: {property_id}",
            context={"property_id": str(property_id)},
        )


class LeaseNotFoundError(NotFoundError):
    """Raised when a tenant has no active lease."""

    error_code = "LEASE_NOT_FOUND"

    def __init__(self, tenant_id: UUID | str) -> None:
        super().__init__(
            f"No active lease found for tenant: {tenant_id}",
            context={"tenant_id": str(tenant_id)},
        )


class DepositAccountNotFoundError(NotFoundError):
    """Raised when a property has no active security deposit account."""

    error_code = "DEPOSIT_ACCOUNT_NOT_FOUND"

    def __init__(self, property_id: UUID | str) -> None:
        super().__init__(
            f"No security deposit trust account found for property: {property_id}",
            context={"property_id": str(property_id)},
        )


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(TrustLedgerError):
    """Base exception for input the caller must correct."""

    error_code = "VALIDATION_ERROR"
    status_code = 422


class InvalidAmountError(ValidationError):
    """Raised when an invalid monetary amount is provided."""

    error_code = "INVALID_AMOUNT"

    def __init__(self, amount: Any, reason: str) -> None:
        super().__init__(
            f"Invalid amount '{amount}': {reason}",
            context={"amount": str(amount), "reason": reason},
        )


class InvalidInterestConfigError(ValidationError):
    """Raised when an interest-bearing account lacks a positive rate."""

    error_code = "INVALID_INTEREST_CONFIG"

    def __init__(self, interest_rate: Decimal | None) -> None:
        super().__init__(
            "Interest rate must be provided and greater than zero "
            "for interest-bearing accounts",
            context={
                "interest_rate": None if interest_rate is None else str(interest_rate)
            },
        )


class InvalidAccountTypeError(ValidationError):
    """Raised when an unknown trust account type is given."""

    error_code = "INVALID_ACCOUNT_TYPE"

    def __init__(self, account_type: str) -> None:
        super().__init__(
            f"Invalid account type '{account_type}'. "
            "Must be one of: security_deposit, escrow, reserve",
            context={"account_type": account_type},
        )


class SameAccountTransferError(ValidationError):
    """Raised when a transfer names the same account on both sides."""

    error_code = "SAME_ACCOUNT_TRANSFER"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            "Source and destination accounts cannot be the same",
            context={"account_id": str(account_id)},
        )


class TenantRequiredError(ValidationError):
    """Raised when a security deposit posting has no tenant."""

    error_code = "TENANT_REQUIRED"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            "Tenant ID is required for security deposit accounts",
            context={"account_id": str(account_id)},
        )


class NotInterestBearingError(ValidationError):
    """Raised when interest is posted to an account that earns none."""

    error_code = "NOT_INTEREST_BEARING"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            "Cannot record interest for non-interest-bearing account",
            context={"account_id": str(account_id)},
        )


class UnsupportedFormatError(ValidationError):
    """Raised when a statement is requested in an unknown format."""

    error_code = "UNSUPPORTED_FORMAT"

    def __init__(self, fmt: str) -> None:
        super().__init__(
            f"Unsupported statement format: {fmt}",
            context={"format": fmt},
        )


# =============================================================================
# Business Rejections and Policy Violations
# =============================================================================


class InsufficientFundsError(TrustLedgerError):
    """Raised when a withdrawal or fee exceeds the account balance."""

    error_code = "INSUFFICIENT_FUNDS"
    status_code = 409

    def __init__(
        self, account_id: UUID | str, required: Decimal, available: Decimal
    ) -> None:
        super().__init__(
            f"Insufficient funds in trust account: required {required}, "
            f"available {available}",
            context={
                "account_id": str(account_id),
                "required": str(required),
                "available": str(available),
            },
        )


class PolicyViolationError(TrustLedgerError):
    """Base exception for account lifecycle policy violations."""

    error_code = "POLICY_VIOLATION"
    status_code = 409


class DuplicateActiveAccountError(PolicyViolationError):
    """Raised when a property already has an active account of the same type."""

    error_code = "DUPLICATE_ACTIVE_ACCOUNT"

    def __init__(self, property_id: UUID | str, account_type: str) -> None:
        super().__init__(
            f"An active trust account of type {account_type} already exists "
            "for this property",
            context={"property_id": str(property_id), "account_type": account_type},
        )


class NonZeroBalanceError(PolicyViolationError):
    """Raised when deactivating an account that still holds funds."""

    error_code = "NON_ZERO_BALANCE"

    def __init__(self, account_id: UUID | str, balance: Decimal) -> None:
        super().__init__(
            "Cannot deactivate trust account with non-zero balance",
            context={"account_id": str(account_id), "balance": str(balance)},
        )


class InactiveAccountError(PolicyViolationError):
    """Raised when an operation targets a deactivated account."""

    error_code = "INACTIVE_ACCOUNT"

    def __init__(self, account_id: UUID | str) -> None:
        super().__init__(
            f"Trust account is inactive: {account_id}",
            context={"account_id": str(account_id)},
        )


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(TrustLedgerError):
    """Base exception for database-related errors."""

    error_code = "DATABASE_ERROR"
    status_code = 500


class ConcurrencyConflictError(DatabaseError):
    """Raised when an account lock cannot be obtained in time.

    The unit of work has been rolled back in full, so the caller may retry.
    """

    error_code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, message: str = "Timed out waiting for account lock") -> None:
        super().__init__(message)


class IntegrityError(DatabaseError):
    """Raised when a database integrity constraint is violated."""

    error_code = "DATABASE_INTEGRITY_ERROR"
    status_code = 409


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(TrustLedgerError):
    """Raised when the application is misconfigured."""

    error_code = "CONFIGURATION_ERROR"
    status_code = 500
