"""
ReconciliationRecord: durable intent record for an external money movement.

Written before a refund or transfer is sent to Stripe, updated as the
gateway answers, and marked applied once local state reflects the
effect. The reconciliation worker scans for records that stopped
half-way and finishes them.

    gateway_status  local_status  meaning
    not_attempted   pending       nothing sent (or a definite rejection)
    sent            pending       outcome unknown, reconciler looks it up
    confirmed       pending       money moved, local write outstanding
    confirmed       applied       done
    *               failed        needs manual review
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import GatewayStatus, LocalStatus, ReconciliationOperation


class ReconciliationRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    One refund or payout transfer and how far it got.

    Fields:
        operation: refund or payout_transfer
        session: Session being refunded (refunds only)
        payout: Payout being transferred (transfers only)
        external_idempotency_key: Key sent to Stripe, unique per operation
        external_id: Stripe object id once confirmed (re_xxx / tr_xxx)
        payload: What to apply locally once confirmed
    """

    operation = models.CharField(
        max_length=32,
        choices=ReconciliationOperation.choices,
        db_index=True,
    )
    session = models.ForeignKey(
        "bookings.ExpertSession",
        on_delete=models.PROTECT,
        related_name="reconciliation_records",
        null=True,
        blank=True,
    )
    payout = models.ForeignKey(
        "payments.Payout",
        on_delete=models.PROTECT,
        related_name="reconciliation_records",
        null=True,
        blank=True,
    )
    external_idempotency_key = models.CharField(max_length=255, unique=True)
    external_id = models.CharField(max_length=255, null=True, blank=True)
    amount_cents = models.PositiveBigIntegerField()
    gateway_status = models.CharField(
        max_length=16,
        choices=GatewayStatus.choices,
        default=GatewayStatus.NOT_ATTEMPTED,
        db_index=True,
    )
    local_status = models.CharField(
        max_length=16,
        choices=LocalStatus.choices,
        default=LocalStatus.PENDING,
        db_index=True,
    )
    payload = models.JSONField(default=dict, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")
    applied_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Reconciliation Record"
        verbose_name_plural = "Reconciliation Records"
        indexes = [
            models.Index(fields=["gateway_status", "local_status"], name="recon_record_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(operation=ReconciliationOperation.REFUND, session__isnull=False)
                | models.Q(
                    operation=ReconciliationOperation.PAYOUT_TRANSFER,
                    payout__isnull=False,
                ),
                name="reconciliation_record_has_subject",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"ReconciliationRecord({self.id}, {self.operation}, "
            f"{self.gateway_status}/{self.local_status})"
        )

    @property
    def needs_local_apply(self) -> bool:
        return (
            self.gateway_status == GatewayStatus.CONFIRMED
            and self.local_status == LocalStatus.PENDING
        )
