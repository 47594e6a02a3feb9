"""
Payment adapters for external services.

All external payment API calls go through these adapters to ensure
consistent error handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    result = StripeAdapter.transfer(
        destination_account_id="acct_xxx",
        amount_cents=4250,
        idempotency_key=IdempotencyKeyGenerator.generate("payout_transfer", payout.id),
    )
"""

from payments.adapters.stripe_adapter import (
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
]
