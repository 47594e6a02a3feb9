"""
State enums for booking models.

Session States:
    pending_payment → scheduled (payment confirmed)
    pending_payment → cancelled (payment window expired)
    scheduled → in_progress → completed
    scheduled/in_progress → cancelled
    scheduled → no_show

Terminal states: completed, cancelled, no_show. No transition leaves them.

Payment status is tracked separately from the session status:
    unpaid → paid → refunded / partially_refunded
"""

from django.db import models


class SessionStatus(models.TextChoices):
    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    SCHEDULED = "scheduled", "Scheduled"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    NO_SHOW = "no_show", "No Show"


TERMINAL_SESSION_STATUSES = frozenset(
    {
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
        SessionStatus.NO_SHOW,
    }
)

CANCELLABLE_SESSION_STATUSES = frozenset(
    {
        SessionStatus.SCHEDULED,
        SessionStatus.IN_PROGRESS,
    }
)


class PaymentStatus(models.TextChoices):
    """
    Money state of a session.

    REFUNDED means refund_amount_in_cents equals the price.
    PARTIALLY_REFUNDED means 0 < refund_amount_in_cents < price.
    """

    UNPAID = "unpaid", "Unpaid"
    PAID = "paid", "Paid"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"


class SessionType(models.TextChoices):
    CODING = "coding", "Coding Interview"
    SYSTEM_DESIGN = "system_design", "System Design"
    BEHAVIORAL = "behavioral", "Behavioral"
    MOCK_FULL = "mock_full", "Full Mock Interview"


class NoShowParty(models.TextChoices):
    CANDIDATE = "candidate", "Candidate"
    INTERVIEWER = "interviewer", "Interviewer"


class CoachingPackageStatus(models.TextChoices):
    """
    ACTIVE: Has remaining sessions and can be debited
    EXHAUSTED: All sessions used; a credit re-activates it
    CANCELLED: Closed by support, never debited again
    """

    ACTIVE = "active", "Active"
    EXHAUSTED = "exhausted", "Exhausted"
    CANCELLED = "cancelled", "Cancelled"


class CoachingPackageType(models.TextChoices):
    THREE_SESSIONS = "3_session", "3 Sessions"
    FIVE_SESSIONS = "5_session", "5 Sessions"
    TEN_SESSIONS = "10_session", "10 Sessions"
