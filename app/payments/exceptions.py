"""
Payment-specific exceptions for gateway calls, payouts and reconciliation.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── NoEligibleFundsError - Payout request below the minimum (400)
    └── PaymentProcessingError - Payment processing failures (502)
        └── GatewayError - Any payment gateway failure
            └── StripeError - Base for all Stripe errors
                ├── StripeCardDeclinedError - Card declined (permanent)
                ├── StripeInsufficientFundsError - Insufficient funds (permanent)
                ├── StripeInvalidAccountError - Invalid Connect account (permanent)
                ├── StripeInvalidRequestError - Invalid request params (permanent)
                ├── StripeRateLimitError - Rate limited (transient)
                ├── StripeAPIUnavailableError - API unavailable (transient)
                └── StripeTimeoutError - Outcome unknown (transient)

    ReconciliationRequired - Money moved but local state lags (202)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
        └── ReconciliationLockError - Another reconciliation run holds the lock

Gateway errors split along one more axis than retryability: outcome_unknown
is True only when the request may have reached Stripe and been processed
(timeouts, dropped connections). Callers must not treat those as failures;
the intent record stays "sent" and the reconciler settles it.

Usage:
    from payments.exceptions import GatewayError, ReconciliationRequired

    try:
        StripeAdapter.refund(...)
    except GatewayError as e:
        if e.outcome_unknown:
            raise ReconciliationRequired(...) from e
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Errors
# =============================================================================


class PaymentError(BaseApplicationError):
    """Base exception for payment domain errors."""

    default_error_code: str = "PAYMENT_ERROR"
    http_status: int = 400


class NoEligibleFundsError(PaymentError):
    """
    Raised when a payout request does not reach the minimum amount.

    Attributes:
        shortfall_cents: How much more eligible earnings are needed
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        message: str,
        shortfall_cents: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["shortfall_cents"] = shortfall_cents
        super().__init__(message, error_code=error_code, details=details)
        self.shortfall_cents = shortfall_cents


class PaymentProcessingError(PaymentError):
    """Raised when processing a payment through the gateway fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"
    http_status: int = 502


# =============================================================================
# Gateway Errors
# =============================================================================


class GatewayError(PaymentProcessingError):
    """
    Base exception for payment gateway failures.

    Attributes:
        is_retryable: Transient error, safe to retry with the same key
        outcome_unknown: The request may have been applied by the gateway
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False
    outcome_unknown: bool = False


class StripeError(GatewayError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
    """

    default_error_code: str = "STRIPE_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """The card was declined when charging a session."""

    default_error_code: str = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    """The card has insufficient funds."""

    default_error_code: str = "CARD_INSUFFICIENT_FUNDS"


class StripeInvalidAccountError(StripeError):
    """
    The destination Connect account is invalid or cannot receive transfers.

    Usually means onboarding was never finished or the account was
    rejected; the interviewer must fix their account before a retry.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(StripeError):
    """Stripe rejected the request parameters (already refunded, bad id)."""

    default_error_code: str = "INVALID_STRIPE_REQUEST"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Stripe rate limited the request; nothing was applied."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Stripe answered with a server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    The request timed out or the connection dropped before a response.

    Stripe may or may not have processed the request. Retrying with the
    same idempotency key is safe, and reconciliation looks the object up.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True
    outcome_unknown: bool = True


# =============================================================================
# Reconciliation
# =============================================================================


class ReconciliationRequired(BaseApplicationError):
    """
    Raised when the external effect may be done but local state is not.

    Not a failure from the caller's point of view: the money movement is
    recorded in a ReconciliationRecord and the reconciler will finish it.
    API views answer 202 Accepted.

    Attributes:
        record_id: Id of the ReconciliationRecord that tracks the operation
    """

    default_error_code: str = "RECONCILIATION_REQUIRED"
    http_status: int = 202

    def __init__(
        self,
        message: str,
        record_id: Any = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if record_id is not None:
            details["record_id"] = str(record_id)
        super().__init__(message, error_code=error_code, details=details)
        self.record_id = record_id


# =============================================================================
# Concurrency Control Errors
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired within the timeout.

    Example:
        with DistributedLock("reconciliation:run", timeout=5.0):
            ...
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class ReconciliationLockError(LockAcquisitionError):
    """Raised when another reconciliation run already holds the run lock."""

    default_error_code: str = "RECONCILIATION_LOCKED"
