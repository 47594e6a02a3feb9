"""
State enums for payment models.

These are Django TextChoices used for database storage, django-fsm
transitions and admin integration.

State Machines Overview:

Payout States:
    pending → completed
    pending → failed → pending (retry)

ReconciliationRecord (two independent axes):
    gateway_status: not_attempted → sent → confirmed
                    sent → not_attempted (definite failure, safe to resend)
    local_status:   pending → applied
                    pending → failed (needs manual review)
"""

from django.db import models


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: COMPLETED. FAILED payouts keep their sessions and
    can be retried with the same idempotency key.
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class ReconciliationOperation(models.TextChoices):
    """Kind of external money movement a ReconciliationRecord tracks."""

    REFUND = "refund", "Refund"
    PAYOUT_TRANSFER = "payout_transfer", "Payout Transfer"


class GatewayStatus(models.TextChoices):
    """
    What is known about the gateway side of an operation.

    NOT_ATTEMPTED: Never sent, or sent and definitely rejected
    SENT: Request issued, outcome not yet known
    CONFIRMED: Gateway returned the created object
    """

    NOT_ATTEMPTED = "not_attempted", "Not Attempted"
    SENT = "sent", "Sent"
    CONFIRMED = "confirmed", "Confirmed"


class LocalStatus(models.TextChoices):
    """
    Whether the confirmed external effect has been written locally.

    FAILED means the effect cannot be applied automatically (for example
    the session reached another terminal state) and needs an operator.
    """

    PENDING = "pending", "Pending"
    APPLIED = "applied", "Applied"
    FAILED = "failed", "Failed"
