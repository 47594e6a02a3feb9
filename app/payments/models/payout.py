"""
Payout model: one transfer of an interviewer's accumulated earnings.

A payout owns the sessions whose ids are listed in sessions_included;
each of those sessions points back through its payout_id. The list is
fixed once the payout is created.

Usage:
    payout.complete(transfer_id="tr_xxx", at=timezone.now())
    payout.save(update_fields=["status", "stripe_transfer_id", "completed_at", "updated_at"])
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import PayoutStatus


class Payout(ConcurrentTransitionMixin, UUIDPrimaryKeyMixin, BaseModel):
    """
    Money sent from the platform to an interviewer's connected account.

    State Flow:
        PENDING -> COMPLETED
        PENDING -> FAILED -> PENDING (retry)

    Fields:
        interviewer: Recipient of the payout
        connected_account: Destination Stripe account
        amount_cents: Sum of the included sessions' interviewer payouts
        sessions_included: Session ids (strings), immutable after creation
        stripe_transfer_id: Stripe Transfer ID once confirmed
        attempts: Number of transfer attempts
    """

    interviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    connected_account = models.ForeignKey(
        "payments.ConnectedAccount",
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    amount_cents = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default="usd")
    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )
    sessions_included = models.JSONField(default=list)
    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )
    attempts = models.PositiveIntegerField(default=0)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["interviewer", "status"], name="payout_interviewer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(amount_cents__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = (
                type(self)
                .objects.filter(pk=self.pk)
                .values_list("sessions_included", flat=True)
                .first()
            )
            if stored is not None and sorted(stored) != sorted(self.sessions_included):
                raise ValidationError(
                    "sessions_included cannot change after a payout is created",
                    error_code="PAYOUT_SESSIONS_IMMUTABLE",
                    details={"payout_id": str(self.pk)},
                )
        super().save(*args, **kwargs)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, transfer_id: str, at):
        """Transition: PENDING -> COMPLETED"""
        self.stripe_transfer_id = transfer_id
        self.completed_at = at
        self.failure_reason = ""

    @transition(
        field=status,
        source=PayoutStatus.PENDING,
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str, at):
        """
        Transition: PENDING -> FAILED

        Only for definite gateway rejections. The sessions stay linked
        so a retry pays exactly the same earnings.
        """
        self.failure_reason = reason
        self.failed_at = at

    @transition(
        field=status,
        source=PayoutStatus.FAILED,
        target=PayoutStatus.PENDING,
    )
    def retry(self):
        """Transition: FAILED -> PENDING"""
        self.failed_at = None
