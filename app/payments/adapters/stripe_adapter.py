"""
Stripe API adapter for payment operations.

All Stripe calls go through StripeAdapter so that timeouts, idempotency
keys, structured logging and error translation are handled in one place.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_NETWORK_RETRIES: SDK level retries (default: 0)

Usage:
    from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    result = StripeAdapter.refund(
        payment_intent_id="pi_xxx",
        amount_cents=5000,
        idempotency_key=IdempotencyKeyGenerator.generate("refund", session.id),
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class PaymentIntentResult:
    """
    Result from charging a session.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: Current status (succeeded, processing, requires_action)
        amount_cents: Amount in cents
        currency: Currency code
        metadata: Attached metadata
        raw_response: Full Stripe response dict (for debugging)
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in cents
        currency: Currency code
        destination_account: Destination Stripe account ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        currency: Currency code
        status: Refund status (succeeded, pending, failed)
        payment_intent_id: Original PaymentIntent ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic: the same operation on the same entity always
    yields the same key, so a retried refund or transfer is collapsed by
    Stripe into the original request.

    Example:
        key = IdempotencyKeyGenerator.generate("refund", session.id)
        # "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods with no instance state, safe to use from
    request threads and Celery workers alike.

    Operations:
        charge: Confirm a PaymentIntent for a session
        refund: Refund part or all of a PaymentIntent
        transfer: Move funds to a Connect account
        list_refunds: Refunds issued against a PaymentIntent
        list_recent_transfers: Transfers created after a point in time
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and SDK retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_NETWORK_RETRIES", 0)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _execute(
        cls,
        log_context: dict[str, Any],
        call: Callable[[], Any],
        describe: Callable[[Any], dict[str, Any]] | None = None,
        level: int = logging.INFO,
    ) -> Any:
        """
        Run one Stripe call with timing logs and error translation.

        Args:
            log_context: Structured context attached to every log line
            call: Zero-argument callable performing the SDK request
            describe: Extracts extra log fields from the SDK response
            level: Log level for the start/finish lines
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.log(level, "Starting Stripe operation", extra=log_context)

        try:
            response = call()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.log(
            level,
            "Stripe operation completed",
            extra={
                **log_context,
                **(describe(response) if describe else {}),
                "duration_ms": duration_ms,
            },
        )
        return response

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def charge(
        cls,
        amount_cents: int,
        payment_method_id: str,
        idempotency_key: str,
        currency: str = "usd",
        customer_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntentResult:
        """
        Charge a payment method by creating and confirming a PaymentIntent.

        Args:
            amount_cents: Amount to charge in cents
            payment_method_id: Stripe PaymentMethod ID (pm_xxx)
            idempotency_key: Unique key for idempotent creation
            currency: ISO 4217 currency code
            customer_id: Optional Stripe Customer ID
            metadata: Key-value pairs to attach to the PaymentIntent

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Card has insufficient funds
            StripeTimeoutError: Outcome unknown
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")

        intent = cls._execute(
            {
                "operation": "charge",
                "amount_cents": amount_cents,
                "currency": currency,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                payment_method=payment_method_id,
                customer=customer_id,
                confirm=True,
                payment_method_types=["card"],
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
            describe=lambda i: {"payment_intent_id": i.id, "status": i.status},
        )

        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            metadata=dict(intent.metadata or {}),
            raw_response=intent.to_dict(),
        )

    @classmethod
    def refund(
        cls,
        payment_intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = "requested_by_customer",
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a PaymentIntent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            amount_cents: Amount to refund in cents
            idempotency_key: Unique key for idempotent refund
            reason: Refund reason (duplicate, fraudulent, requested_by_customer)
            metadata: Optional metadata dict

        Raises:
            StripeInvalidRequestError: Refund not possible (already refunded)
            StripeTimeoutError: Outcome unknown
        """
        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "amount": amount_cents,
            "metadata": metadata or {},
        }
        if reason:
            params["reason"] = reason

        refund = cls._execute(
            {
                "operation": "refund",
                "payment_intent_id": payment_intent_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.Refund.create(idempotency_key=idempotency_key, **params),
            describe=lambda r: {"refund_id": r.id, "status": r.status},
        )

        return cls._to_refund_result(refund)

    @classmethod
    def transfer(
        cls,
        destination_account_id: str,
        amount_cents: int,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected account.

        Args:
            destination_account_id: Stripe Connect account ID (acct_xxx)
            amount_cents: Amount to transfer in cents
            idempotency_key: Unique key for idempotent transfer
            currency: Currency code
            metadata: Optional metadata dict (payout_id is used for lookups)

        Raises:
            StripeInvalidAccountError: Destination account invalid
            StripeTimeoutError: Outcome unknown
        """
        transfer = cls._execute(
            {
                "operation": "transfer",
                "destination_account_id": destination_account_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
            },
            lambda: stripe.Transfer.create(
                amount=amount_cents,
                currency=currency,
                destination=destination_account_id,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
            describe=lambda t: {"transfer_id": t.id},
        )

        return cls._to_transfer_result(transfer)

    # =========================================================================
    # Lookups (used by reconciliation)
    # =========================================================================

    @classmethod
    def list_refunds(cls, payment_intent_id: str, limit: int = 100) -> list[RefundResult]:
        """Refunds created against a PaymentIntent, newest first."""
        refunds = cls._execute(
            {
                "operation": "list_refunds",
                "payment_intent_id": payment_intent_id,
                "limit": limit,
            },
            lambda: stripe.Refund.list(payment_intent=payment_intent_id, limit=limit),
            describe=lambda r: {"count": len(r.data)},
            level=logging.DEBUG,
        )
        return [cls._to_refund_result(refund) for refund in refunds.data]

    @classmethod
    def list_recent_transfers(
        cls,
        created_after: datetime,
        limit: int = 100,
    ) -> list[TransferResult]:
        """
        Transfers created after a given time.

        Args:
            created_after: Only include transfers created after this time
            limit: Maximum number to return (max 100)
        """
        created_gte = int(created_after.timestamp())
        transfers = cls._execute(
            {
                "operation": "list_recent_transfers",
                "created_after": created_after.isoformat(),
                "limit": limit,
            },
            lambda: stripe.Transfer.list(created={"gte": created_gte}, limit=limit),
            describe=lambda t: {"count": len(t.data)},
            level=logging.DEBUG,
        )
        return [cls._to_transfer_result(transfer) for transfer in transfers.data]

    # =========================================================================
    # Response Mapping
    # =========================================================================

    @staticmethod
    def _to_refund_result(refund: Any) -> RefundResult:
        return RefundResult(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
            metadata=dict(refund.metadata or {}),
            raw_response=refund.to_dict(),
        )

    @staticmethod
    def _to_transfer_result(transfer: Any) -> TransferResult:
        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Stripe server error
            StripeTimeoutError: Network failure, outcome unknown
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )

            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error

            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                ) from error

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            ) from error

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        elif isinstance(error, stripe.APIConnectionError):
            # The request may have been processed before the connection dropped
            logger.error(
                "Connection error to Stripe, outcome unknown",
                extra=log_context,
                exc_info=True,
            )
            raise StripeTimeoutError(
                "Stripe did not respond; the request may have been applied.",
                stripe_code="api_connection_error",
            ) from error

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            ) from error
