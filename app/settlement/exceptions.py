"""
Settlement-specific exception classes.

Exception Hierarchy:
    BaseApplicationError (from core)
    ├── SettlementError - Base for settlement domain errors
    │   ├── PaymentSetupError - Store cannot receive funds
    │   ├── InsufficientFundsError - Amount exceeds derivable balance
    │   ├── InventoryError - Inventory reservation or adjustment failed
    │   └── ReconciliationRequiredError - Gateway moved money, local write failed
    ├── ConflictError (from core)
    │   ├── LockAcquisitionError - Distributed lock not acquired
    │   └── InvalidStateTransitionError - FSM transition not allowed
    └── ExternalServiceError (from core)
        └── GatewayError - Payment gateway call failed
            ├── GatewayCardDeclinedError (permanent)
            ├── GatewayInvalidRequestError (permanent)
            ├── GatewayInvalidAccountError (permanent)
            ├── GatewayRateLimitError (transient)
            ├── GatewayUnavailableError (transient)
            └── GatewayTimeoutError (transient)

Usage:
    from settlement.exceptions import GatewayError, PaymentSetupError

    try:
        adapter.create_payout(...)
    except GatewayError as e:
        if e.is_retryable:
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
)

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any


# =============================================================================
# Settlement Domain Errors
# =============================================================================


class SettlementError(BaseApplicationError):
    """Base exception for settlement domain errors."""

    default_error_code: str = "SETTLEMENT_ERROR"


class PaymentSetupError(SettlementError):
    """
    Raised when one or more stores cannot receive funds.

    The message names every blocking store so checkout can tell the
    buyer which store held up the order.

    Attributes:
        store_names: Names of the stores without a payment destination
    """

    default_error_code: str = "PAYMENT_SETUP_REQUIRED"

    def __init__(
        self,
        store_names: list[str],
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.store_names = list(store_names)
        message = message or (
            "Store(s) have not connected a payout account: "
            + ", ".join(self.store_names)
        )
        details = {**(details or {}), "store_names": self.store_names}
        super().__init__(message, details=details)


class InsufficientFundsError(SettlementError):
    """
    Raised when a requested amount exceeds the derivable balance.

    Attributes:
        required: Amount requested
        available: Amount available
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        required: Decimal,
        available: Decimal,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.required = required
        self.available = available
        message = message or (
            f"Requested {required} exceeds available balance {available}"
        )
        details = {
            **(details or {}),
            "required": str(required),
            "available": str(available),
        }
        super().__init__(message, details=details)


class InventoryError(SettlementError):
    """Raised when the inventory collaborator rejects an adjustment."""

    default_error_code: str = "INVENTORY_ERROR"


class ReconciliationRequiredError(SettlementError):
    """
    Raised when the gateway confirmed a money movement but the local
    write that records it failed.

    This is never retried automatically: the gateway reference in
    ``details`` must be reconciled by hand or by the reconciliation pass.
    """

    default_error_code: str = "RECONCILIATION_REQUIRED"


# =============================================================================
# Concurrency Control Errors
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Example:
        with DistributedLock(store_payout_key(store_id), ttl=120, timeout=10.0):
            ...
        # raises LockAcquisitionError if another worker holds the lock
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """Raised when a django-fsm transition is not allowed from the current state."""

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Gateway Errors
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for payment gateway failures.

    Attributes:
        gateway_code: Gateway's own error code, if any
        is_retryable: True for transient failures (rate limits, outages,
            timeouts), False for permanent ones
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayCardDeclinedError(GatewayError):
    """The buyer's card was declined."""

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class GatewayInvalidRequestError(GatewayError):
    """The gateway rejected the request parameters."""

    default_error_code: str = "GATEWAY_INVALID_REQUEST"
    is_retryable: bool = False


class GatewayInvalidAccountError(GatewayError):
    """The store's connected account is missing, restricted, or rejected."""

    default_error_code: str = "GATEWAY_INVALID_ACCOUNT"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry)
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """The gateway rate-limited the request."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """The gateway could not be reached or returned a server error."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayTimeoutError(GatewayError):
    """The gateway call exceeded its timeout."""

    default_error_code: str = "GATEWAY_TIMEOUT"
    is_retryable: bool = True
