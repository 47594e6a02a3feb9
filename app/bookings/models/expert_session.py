"""
ExpertSession model: one paid interview between a candidate and an interviewer.

The session carries two independent state axes:
    status: lifecycle (django-fsm, protected, compare-and-set on save)
    payment_status: money state (unpaid, paid, refunded, partially_refunded)

Status is never assigned directly. Services call the transition methods
and save with update_fields; ConcurrentTransitionMixin turns the UPDATE
into a compare-and-set on the status that was loaded, so two writers
racing on the same session cannot both win.

Usage:
    from bookings.models import ExpertSession

    session = ExpertSession.objects.get(pk=session_id)
    session.cancel(reason="Candidate unavailable", at=timezone.now())
    session.save(update_fields=["status", "cancelled_at", "cancellation_reason", "updated_at"])
"""

from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from bookings.state_machines import (
    TERMINAL_SESSION_STATUSES,
    PaymentStatus,
    SessionStatus,
    SessionType,
)
from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ExpertSession(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    A scheduled interview session.

    State Flow:
        PENDING_PAYMENT -> SCHEDULED -> IN_PROGRESS -> COMPLETED
        PENDING_PAYMENT -> CANCELLED (payment window expired)
        SCHEDULED/IN_PROGRESS -> CANCELLED
        SCHEDULED -> NO_SHOW

    Money invariants (enforced by check constraints):
        price = platform fee + interviewer payout
        refunded => refund amount == price
        partially_refunded => 0 < refund amount < price
        payout_id set => completed and paid
    """

    # ==========================================================================
    # Participants
    # ==========================================================================

    candidate = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="candidate_sessions",
        help_text="User who booked the session",
    )
    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="interviewer_sessions",
        help_text="Expert running the session and receiving the payout",
    )

    # ==========================================================================
    # Schedule
    # ==========================================================================

    session_type = models.CharField(
        max_length=32,
        choices=SessionType.choices,
        default=SessionType.CODING,
    )
    scheduled_at = models.DateTimeField(db_index=True)
    duration_minutes = models.PositiveSmallIntegerField(
        default=60,
        validators=[MinValueValidator(30), MaxValueValidator(120)],
    )
    notes = models.TextField(blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SessionStatus.PENDING_PAYMENT,
        choices=SessionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Lifecycle status (managed by FSM)",
    )
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")
    no_show_party = models.CharField(
        max_length=16,
        blank=True,
        default="",
        help_text="candidate or interviewer; empty when nobody reported it",
    )

    # ==========================================================================
    # Money
    # ==========================================================================

    price_in_cents = models.PositiveIntegerField()
    platform_fee_in_cents = models.PositiveIntegerField()
    interviewer_payout_in_cents = models.PositiveIntegerField()
    payment_status = models.CharField(
        max_length=32,
        choices=PaymentStatus.choices,
        default=PaymentStatus.UNPAID,
        db_index=True,
    )
    payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )
    coaching_package = models.ForeignKey(
        "bookings.CoachingPackage",
        on_delete=models.PROTECT,
        related_name="sessions",
        null=True,
        blank=True,
        help_text="Package the session was paid from, if any",
    )

    # ==========================================================================
    # Refund outcome
    # ==========================================================================

    refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Refund ID (re_xxx)",
    )
    refund_amount_in_cents = models.PositiveIntegerField(default=0)
    refund_percentage = models.PositiveSmallIntegerField(default=0)
    refund_reason = models.CharField(max_length=255, blank=True, default="")
    package_credit_returned = models.BooleanField(default=False)

    # ==========================================================================
    # Payout link
    # ==========================================================================

    payout_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Payout that claimed this session's earnings",
    )

    class Meta:
        ordering = ["-scheduled_at"]
        verbose_name = "Expert Session"
        verbose_name_plural = "Expert Sessions"
        indexes = [
            models.Index(
                fields=["interviewer", "status", "payment_status"],
                name="session_interviewer_state_idx",
            ),
            models.Index(fields=["status", "scheduled_at"], name="session_status_schedule_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(
                    price_in_cents=models.F("platform_fee_in_cents")
                    + models.F("interviewer_payout_in_cents")
                ),
                name="session_price_split_balances",
            ),
            models.CheckConstraint(
                check=~models.Q(payment_status=PaymentStatus.REFUNDED)
                | models.Q(refund_amount_in_cents=models.F("price_in_cents")),
                name="session_refunded_means_full_amount",
            ),
            models.CheckConstraint(
                check=~models.Q(payment_status=PaymentStatus.PARTIALLY_REFUNDED)
                | models.Q(
                    refund_amount_in_cents__gt=0,
                    refund_amount_in_cents__lt=models.F("price_in_cents"),
                ),
                name="session_partial_refund_in_range",
            ),
            models.CheckConstraint(
                check=models.Q(payout_id__isnull=True)
                | models.Q(
                    status=SessionStatus.COMPLETED,
                    payment_status=PaymentStatus.PAID,
                ),
                name="session_payout_requires_completed_paid",
            ),
        ]

    def __str__(self) -> str:
        return f"ExpertSession({self.id}, {self.status}, {self.scheduled_at:%Y-%m-%d %H:%M})"

    def delete(self, *args, **kwargs):
        """Sessions that ever took money are kept for the audit trail."""
        if self.payment_status != PaymentStatus.UNPAID:
            raise ValidationError(
                "Sessions with a payment cannot be deleted",
                error_code="SESSION_HAS_PAYMENT",
                details={"session_id": str(self.id), "payment_status": self.payment_status},
            )
        return super().delete(*args, **kwargs)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SESSION_STATUSES

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def participant_role(self, user_id) -> str | None:
        """Return "candidate", "interviewer" or None for an outsider."""
        if user_id is None:
            return None
        if str(user_id) == str(self.candidate_id):
            return "candidate"
        if str(user_id) == str(self.interviewer_id):
            return "interviewer"
        return None

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=SessionStatus.PENDING_PAYMENT,
        target=SessionStatus.SCHEDULED,
    )
    def confirm_payment(self, payment_intent_id: str | None = None):
        """
        Transition: PENDING_PAYMENT -> SCHEDULED

        Package-paid sessions pass no intent id.
        """
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id
        self.payment_status = PaymentStatus.PAID

    @transition(
        field=status,
        source=SessionStatus.PENDING_PAYMENT,
        target=SessionStatus.CANCELLED,
    )
    def expire_payment(self, reason: str, at):
        """Transition: PENDING_PAYMENT -> CANCELLED (no money moved)."""
        self.cancelled_at = at
        self.cancellation_reason = reason

    @transition(
        field=status,
        source=SessionStatus.SCHEDULED,
        target=SessionStatus.IN_PROGRESS,
    )
    def start(self, at):
        """Transition: SCHEDULED -> IN_PROGRESS"""
        self.started_at = at

    @transition(
        field=status,
        source=SessionStatus.IN_PROGRESS,
        target=SessionStatus.COMPLETED,
    )
    def complete(self, at):
        """Transition: IN_PROGRESS -> COMPLETED"""
        self.completed_at = at

    @transition(
        field=status,
        source=[SessionStatus.SCHEDULED, SessionStatus.IN_PROGRESS],
        target=SessionStatus.CANCELLED,
    )
    def cancel(self, reason: str, at):
        """
        Transition: SCHEDULED/IN_PROGRESS -> CANCELLED

        Refund fields are set by the caller before saving.
        """
        self.cancelled_at = at
        self.cancellation_reason = reason

    @transition(
        field=status,
        source=SessionStatus.SCHEDULED,
        target=SessionStatus.NO_SHOW,
    )
    def mark_no_show(self, reason: str, at, party: str = ""):
        """Transition: SCHEDULED -> NO_SHOW"""
        self.cancelled_at = at
        self.cancellation_reason = reason
        self.no_show_party = party
