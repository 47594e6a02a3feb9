"""
Payout service for sending interviewer earnings to connected accounts.

A payout is built in three steps:
1. Claim: one conditional UPDATE stamps a fresh payout id on every
   completed, paid, unclaimed session of the interviewer.
2. Record: the Payout row (same id) and its payout_transfer
   ReconciliationRecord are written in the same transaction as the
   claim, so a claim never outlives a failed insert.
3. Transfer: Stripe is called outside any transaction with an
   idempotency key derived from the payout id.

Two concurrent requests cannot pay the same session twice: the second
claim finds no rows with payout_id IS NULL and fails with
NoEligibleFundsError.

Usage:
    from payments.services import PayoutService

    try:
        payout = PayoutService.request_payout(interviewer.id)
    except NoEligibleFundsError as e:
        print(f"Need {e.shortfall_cents} more cents")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import F, Sum
from django.utils import timezone
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from bookings.models import ExpertSession
from bookings.state_machines import PaymentStatus, SessionStatus
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService, ServiceResult
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import GatewayError, NoEligibleFundsError
from payments.models import ConnectedAccount, Payout, ReconciliationRecord
from payments.state_machines import (
    GatewayStatus,
    LocalStatus,
    PayoutStatus,
    ReconciliationOperation,
)

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class PayoutSummary:
    """
    Earnings overview for one interviewer.

    Attributes:
        payouts: Recent payouts, newest first
        eligible_session_count: Completed, paid sessions not yet in a payout
        pending_amount_cents: What a payout request would transfer now
        total_earnings_cents: Interviewer share of every completed paid session
        this_month_earnings_cents: Same, for sessions completed this month
        minimum_payout_cents: Smallest amount a payout may transfer
    """

    eligible_session_count: int
    pending_amount_cents: int
    total_earnings_cents: int
    this_month_earnings_cents: int
    minimum_payout_cents: int
    payouts: list[Payout] = field(default_factory=list)


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(BaseService):
    """
    Batches an interviewer's earnings into a single transfer.

    Error Handling:
        - Below the minimum: claim released, NoEligibleFundsError
        - Definite gateway rejection: payout FAILED, sessions stay linked
        - Unknown outcome (timeout): payout stays PENDING, the reconciler
          looks the transfer up by payout_id
    """

    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    @classmethod
    def idempotency_key(cls, payout_id) -> str:
        return IdempotencyKeyGenerator.generate("payout_transfer", payout_id)

    @classmethod
    def get_payout(cls, payout_id) -> Payout:
        try:
            return Payout.objects.select_related("connected_account").get(pk=payout_id)
        except (Payout.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                f"Payout {payout_id} not found",
                error_code="PAYOUT_NOT_FOUND",
                details={"payout_id": str(payout_id)},
            )

    @classmethod
    def _eligible_sessions(cls, interviewer_id):
        return ExpertSession.objects.filter(
            interviewer_id=interviewer_id,
            status=SessionStatus.COMPLETED,
            payment_status=PaymentStatus.PAID,
            payout_id__isnull=True,
        )

    # =========================================================================
    # Request
    # =========================================================================

    @classmethod
    def request_payout(cls, interviewer_id, now: datetime | None = None) -> Payout:
        """
        Claim every eligible session and transfer their earnings.

        Returns:
            The Payout, COMPLETED on success, FAILED on a definite
            rejection, PENDING when the transfer outcome is unknown

        Raises:
            ValidationError: No connected account, or payouts not enabled
            NoEligibleFundsError: Claimed earnings below PAYOUT_MINIMUM_CENTS
        """
        now = now or timezone.now()
        logger = cls.get_logger()
        minimum = settings.PAYOUT_MINIMUM_CENTS

        account = ConnectedAccount.objects.filter(user_id=interviewer_id).first()
        if account is None or not account.is_ready_for_payouts:
            raise ValidationError(
                "Connected account is not ready to receive payouts",
                error_code="ACCOUNT_NOT_READY",
                details={"interviewer_id": str(interviewer_id)},
            )

        payout_id = uuid.uuid4()
        with cls.atomic():
            claimed = cls._eligible_sessions(interviewer_id).update(
                payout_id=payout_id,
                updated_at=now,
            )

            claimed_sessions = ExpertSession.objects.filter(payout_id=payout_id)
            amount = (
                claimed_sessions.aggregate(total=Sum("interviewer_payout_in_cents"))["total"] or 0
            )

            if amount < minimum:
                logger.info(
                    "Payout below minimum, claim released",
                    extra={
                        "interviewer_id": str(interviewer_id),
                        "claimed_sessions": claimed,
                        "amount_cents": amount,
                        "minimum_cents": minimum,
                    },
                )
                raise NoEligibleFundsError(
                    "Not enough eligible earnings for a payout",
                    shortfall_cents=minimum - amount,
                    details={"available_cents": amount, "minimum_cents": minimum},
                )

            session_ids = sorted(str(pk) for pk in claimed_sessions.values_list("pk", flat=True))
            payout = Payout.objects.create(
                id=payout_id,
                interviewer_id=interviewer_id,
                connected_account=account,
                amount_cents=amount,
                sessions_included=session_ids,
            )
            ReconciliationRecord.objects.create(
                operation=ReconciliationOperation.PAYOUT_TRANSFER,
                payout=payout,
                external_idempotency_key=cls.idempotency_key(payout.id),
                amount_cents=amount,
                payload={"interviewer_id": str(interviewer_id)},
            )

        logger.info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "interviewer_id": str(interviewer_id),
                "amount_cents": amount,
                "session_count": len(session_ids),
            },
        )

        return cls._execute_transfer(payout, now)

    # =========================================================================
    # Transfer
    # =========================================================================

    @classmethod
    def _transfer_record(cls, payout: Payout) -> ReconciliationRecord:
        return ReconciliationRecord.objects.get(
            operation=ReconciliationOperation.PAYOUT_TRANSFER,
            payout=payout,
        )

    @classmethod
    def _execute_transfer(cls, payout: Payout, now: datetime) -> Payout:
        """Call Stripe for a PENDING payout and record what came back."""
        logger = cls.get_logger()
        record = cls._transfer_record(payout)

        ReconciliationRecord.objects.filter(pk=record.pk).update(
            gateway_status=GatewayStatus.SENT,
            attempts=F("attempts") + 1,
            updated_at=timezone.now(),
        )
        Payout.objects.filter(pk=payout.pk).update(attempts=F("attempts") + 1)

        try:
            transfer = cls.get_stripe_adapter().transfer(
                destination_account_id=payout.connected_account.stripe_account_id,
                amount_cents=payout.amount_cents,
                idempotency_key=record.external_idempotency_key,
                currency=payout.currency,
                metadata={
                    "payout_id": str(payout.id),
                    "interviewer_id": str(payout.interviewer_id),
                    "reconciliation_record_id": str(record.id),
                },
            )
        except GatewayError as e:
            if e.outcome_unknown:
                ReconciliationRecord.objects.filter(pk=record.pk).update(
                    last_error=str(e),
                    updated_at=timezone.now(),
                )
                logger.critical(
                    "Payout transfer outcome unknown - reconciliation needed",
                    extra={
                        "payout_id": str(payout.id),
                        "record_id": str(record.id),
                        "error": str(e),
                    },
                )
                return Payout.objects.get(pk=payout.pk)

            ReconciliationRecord.objects.filter(pk=record.pk).update(
                gateway_status=GatewayStatus.NOT_ATTEMPTED,
                last_error=str(e),
                updated_at=timezone.now(),
            )
            payout = Payout.objects.get(pk=payout.pk)
            payout.fail(reason=e.message, at=now)
            payout.save(update_fields=["status", "failure_reason", "failed_at", "updated_at"])
            logger.error(
                "Payout transfer rejected",
                extra={
                    "payout_id": str(payout.id),
                    "error_code": e.error_code,
                    "is_retryable": e.is_retryable,
                },
            )
            return payout

        ReconciliationRecord.objects.filter(pk=record.pk).update(
            gateway_status=GatewayStatus.CONFIRMED,
            external_id=transfer.id,
            last_error="",
            updated_at=timezone.now(),
        )

        try:
            return cls.apply_transfer(ReconciliationRecord.objects.get(pk=record.pk), now=now)
        except Exception as e:
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                last_error=str(e),
                updated_at=timezone.now(),
            )
            logger.critical(
                "Transfer confirmed but payout not updated - reconciliation needed",
                extra={
                    "payout_id": str(payout.id),
                    "transfer_id": transfer.id,
                    "error": str(e),
                },
            )
            return Payout.objects.get(pk=payout.pk)

    @classmethod
    def apply_transfer(cls, record: ReconciliationRecord, now: datetime | None = None) -> Payout:
        """
        Complete the payout of a confirmed transfer record.

        Idempotent: a payout that is already COMPLETED is returned as is
        and the record is still marked applied.
        """
        now = now or timezone.now()
        with cls.atomic():
            payout = Payout.objects.get(pk=record.payout_id)
            if payout.status != PayoutStatus.COMPLETED:
                payout.complete(transfer_id=record.external_id, at=now)
                payout.save(
                    update_fields=[
                        "status",
                        "stripe_transfer_id",
                        "completed_at",
                        "failure_reason",
                        "updated_at",
                    ]
                )
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                local_status=LocalStatus.APPLIED,
                applied_at=now,
                last_error="",
                updated_at=now,
            )

        cls.get_logger().info(
            "Payout completed",
            extra={
                "payout_id": str(payout.id),
                "transfer_id": payout.stripe_transfer_id,
                "amount_cents": payout.amount_cents,
            },
        )
        return payout

    @classmethod
    def retry_payout(cls, payout_id, now: datetime | None = None) -> ServiceResult[Payout]:
        """
        Re-attempt a FAILED payout with the same sessions and idempotency key.

        Returns:
            ServiceResult with the payout; a COMPLETED payout is returned
            as a success without another transfer
        """
        now = now or timezone.now()
        try:
            payout = cls.get_payout(payout_id)
        except NotFoundError as e:
            return ServiceResult.from_exception(e)

        if payout.status == PayoutStatus.COMPLETED:
            return ServiceResult.success(payout)

        try:
            payout.retry()
            payout.save(update_fields=["status", "failed_at", "updated_at"])
        except TransitionNotAllowed:
            return ServiceResult.failure(
                f"Payout is {payout.status} and cannot be retried",
                error_code="PAYOUT_NOT_RETRYABLE",
            )
        except ConcurrentTransition:
            return ServiceResult.failure(
                "Payout changed concurrently",
                error_code="STALE_STATE",
            )

        cls.get_logger().info(
            "Retrying payout",
            extra={"payout_id": str(payout.id), "attempts": payout.attempts},
        )
        payout = cls._execute_transfer(payout, now)
        if payout.status == PayoutStatus.FAILED:
            return ServiceResult.failure(payout.failure_reason, error_code="PAYOUT_FAILED")
        return ServiceResult.success(payout)

    # =========================================================================
    # Summary
    # =========================================================================

    @classmethod
    def get_summary(cls, interviewer_id, now: datetime | None = None) -> PayoutSummary:
        now = now or timezone.now()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        earned = ExpertSession.objects.filter(
            interviewer_id=interviewer_id,
            status=SessionStatus.COMPLETED,
            payment_status=PaymentStatus.PAID,
        )
        eligible = cls._eligible_sessions(interviewer_id)

        def total(queryset) -> int:
            return queryset.aggregate(total=Sum("interviewer_payout_in_cents"))["total"] or 0

        return PayoutSummary(
            eligible_session_count=eligible.count(),
            pending_amount_cents=total(eligible),
            total_earnings_cents=total(earned),
            this_month_earnings_cents=total(earned.filter(completed_at__gte=month_start)),
            minimum_payout_cents=settings.PAYOUT_MINIMUM_CENTS,
            payouts=list(Payout.objects.filter(interviewer_id=interviewer_id)[:20]),
        )
