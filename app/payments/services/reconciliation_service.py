"""
Reconciliation service for finishing refunds and transfers that stopped half-way.

Every external money movement has a ReconciliationRecord. A run works
through the records that did not reach "applied":

    Phase 1: confirmed/pending records
        Stripe already moved the money; re-run the local write. The
        local writes are idempotent, so repeating them is safe.

    Phase 2: records stuck in "sent" past the threshold
        The call timed out and nobody knows whether Stripe acted. Look
        the object up read-only (refunds by PaymentIntent, transfers by
        payout_id metadata). Found: confirm and apply. A refund not found
        is marked failed for an operator; a transfer not found fails its
        payout so it can be retried with the same key.

The reconciler never creates refunds or transfers.

Usage:
    from payments.services import ReconciliationService

    result = ReconciliationService.run()
    if result.success:
        print(f"Applied {result.data.applied} records")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from core.services import BaseService, ServiceResult
from payments.adapters import StripeAdapter
from payments.exceptions import (
    GatewayError,
    LockAcquisitionError,
    ReconciliationLockError,
    ReconciliationRequired,
)
from payments.locks import DistributedLock
from payments.models import Payout, ReconciliationRecord
from payments.state_machines import GatewayStatus, LocalStatus, ReconciliationOperation


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_RECORDS = 500

RECONCILIATION_RUN_LOCK_KEY = "reconciliation:run"
RECONCILIATION_RUN_LOCK_TTL = 3600  # 1 hour
RECONCILIATION_RUN_LOCK_TIMEOUT = 5.0

# Transfers are listed from this long before the record was written
TRANSFER_LOOKUP_MARGIN = timedelta(hours=1)


# =============================================================================
# Data Types
# =============================================================================


class RecordResolution:
    APPLIED = "applied"
    CONFIRMED_FROM_GATEWAY = "confirmed_from_gateway"
    FLAGGED_FOR_REVIEW = "flagged_for_review"
    STILL_PENDING = "still_pending"


@dataclass
class RecordOutcome:
    """What a run did with one record."""

    record_id: uuid.UUID
    operation: str
    resolution: str
    external_id: str | None = None
    error: str | None = None


@dataclass
class ReconciliationRunResult:
    """Summary of a reconciliation run."""

    started_at: datetime
    completed_at: datetime | None
    records_checked: int = 0
    applied: int = 0
    confirmed_from_gateway: int = 0
    flagged_for_review: int = 0
    still_pending: int = 0
    outcomes: list[RecordOutcome] = field(default_factory=list)

    def add(self, outcome: RecordOutcome) -> None:
        self.records_checked += 1
        self.outcomes.append(outcome)
        if outcome.resolution == RecordResolution.APPLIED:
            self.applied += 1
        elif outcome.resolution == RecordResolution.CONFIRMED_FROM_GATEWAY:
            self.confirmed_from_gateway += 1
            self.applied += 1
        elif outcome.resolution == RecordResolution.FLAGGED_FOR_REVIEW:
            self.flagged_for_review += 1
        else:
            self.still_pending += 1


# =============================================================================
# Reconciliation Service
# =============================================================================


class ReconciliationService(BaseService):
    """
    Heals records left between the gateway call and the local write.

    Concurrency Safety:
        - A global Redis lock allows one run at a time
        - Local writes go through the same idempotent paths the request
          flow uses (RefundSaga.apply_local, PayoutService.apply_transfer)
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

    # =========================================================================
    # Public API
    # =========================================================================

    @classmethod
    def run(
        cls,
        now: datetime | None = None,
        stuck_threshold_minutes: int | None = None,
        max_records: int = DEFAULT_MAX_RECORDS,
    ) -> ServiceResult[ReconciliationRunResult]:
        """
        Run a full reconciliation pass.

        Raises:
            ReconciliationLockError: If another run is already in progress
        """
        if stuck_threshold_minutes is None:
            stuck_threshold_minutes = settings.RECONCILIATION_STUCK_THRESHOLD_MINUTES

        cls.get_logger().info(
            "Starting reconciliation run",
            extra={
                "stuck_threshold_minutes": stuck_threshold_minutes,
                "max_records": max_records,
            },
        )

        lock = DistributedLock(
            RECONCILIATION_RUN_LOCK_KEY,
            ttl=RECONCILIATION_RUN_LOCK_TTL,
            timeout=RECONCILIATION_RUN_LOCK_TIMEOUT,
        )
        try:
            lock.acquire()
        except LockAcquisitionError:
            cls.get_logger().warning(
                "Another reconciliation run is in progress",
                extra={"lock_key": RECONCILIATION_RUN_LOCK_KEY},
            )
            raise ReconciliationLockError(
                "Another reconciliation run is in progress",
                details={"lock_key": RECONCILIATION_RUN_LOCK_KEY},
            )

        try:
            return cls._run_with_lock(
                now=now or timezone.now(),
                stuck_threshold_minutes=stuck_threshold_minutes,
                max_records=max_records,
            )
        finally:
            lock.release()

    @classmethod
    def reconcile_record(
        cls,
        record_id: uuid.UUID | str,
        now: datetime | None = None,
    ) -> ServiceResult[RecordOutcome | None]:
        """
        Reconcile one record on demand, regardless of how long it has been sent.

        Returns:
            ServiceResult with the outcome, or None when the record needs
            nothing
        """
        try:
            record = ReconciliationRecord.objects.get(pk=record_id)
        except (ReconciliationRecord.DoesNotExist, ValueError):
            return ServiceResult.failure(
                f"ReconciliationRecord {record_id} not found",
                error_code="RECORD_NOT_FOUND",
            )

        if record.local_status != LocalStatus.PENDING:
            return ServiceResult.success(None)
        if record.gateway_status == GatewayStatus.CONFIRMED:
            return ServiceResult.success(cls._apply(record))
        if record.gateway_status == GatewayStatus.SENT:
            return ServiceResult.success(cls._look_up(record))
        return ServiceResult.success(None)

    # =========================================================================
    # Internal: Run Orchestration
    # =========================================================================

    @classmethod
    def _run_with_lock(
        cls,
        now: datetime,
        stuck_threshold_minutes: int,
        max_records: int,
    ) -> ServiceResult[ReconciliationRunResult]:
        result = ReconciliationRunResult(started_at=timezone.now(), completed_at=None)

        confirmed = ReconciliationRecord.objects.filter(
            gateway_status=GatewayStatus.CONFIRMED,
            local_status=LocalStatus.PENDING,
        ).order_by("created_at")[:max_records]
        for record in confirmed:
            result.add(cls._apply(record))

        stuck_before = now - timedelta(minutes=stuck_threshold_minutes)
        stuck = ReconciliationRecord.objects.filter(
            gateway_status=GatewayStatus.SENT,
            local_status=LocalStatus.PENDING,
            updated_at__lte=stuck_before,
        ).order_by("created_at")[:max_records]
        for record in stuck:
            result.add(cls._look_up(record))

        result.completed_at = timezone.now()
        cls.get_logger().info(
            "Reconciliation run completed",
            extra={
                "records_checked": result.records_checked,
                "applied": result.applied,
                "confirmed_from_gateway": result.confirmed_from_gateway,
                "flagged_for_review": result.flagged_for_review,
                "still_pending": result.still_pending,
                "duration_seconds": (result.completed_at - result.started_at).total_seconds(),
            },
        )
        return ServiceResult.success(result)

    # =========================================================================
    # Internal: Local Apply
    # =========================================================================

    @classmethod
    def _apply(cls, record: ReconciliationRecord, resolution: str = RecordResolution.APPLIED):
        """Re-run the local write of a confirmed record."""
        from bookings.services.refund_saga import RefundSaga
        from payments.services.payout_service import PayoutService

        try:
            if record.operation == ReconciliationOperation.REFUND:
                RefundSaga.apply_local(record)
            else:
                PayoutService.apply_transfer(record)
        except ReconciliationRequired as e:
            record.refresh_from_db(fields=["local_status"])
            if record.local_status == LocalStatus.FAILED:
                return RecordOutcome(
                    record_id=record.id,
                    operation=record.operation,
                    resolution=RecordResolution.FLAGGED_FOR_REVIEW,
                    external_id=record.external_id,
                    error=str(e),
                )
            return RecordOutcome(
                record_id=record.id,
                operation=record.operation,
                resolution=RecordResolution.STILL_PENDING,
                external_id=record.external_id,
                error=str(e),
            )
        except Exception as e:
            cls.get_logger().error(
                "Failed to apply reconciliation record",
                extra={"record_id": str(record.id), "error": str(e)},
                exc_info=True,
            )
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                last_error=str(e),
                updated_at=timezone.now(),
            )
            return RecordOutcome(
                record_id=record.id,
                operation=record.operation,
                resolution=RecordResolution.STILL_PENDING,
                external_id=record.external_id,
                error=str(e),
            )

        cls.get_logger().info(
            "Reconciliation record applied",
            extra={
                "record_id": str(record.id),
                "operation": record.operation,
                "external_id": record.external_id,
            },
        )
        return RecordOutcome(
            record_id=record.id,
            operation=record.operation,
            resolution=resolution,
            external_id=record.external_id,
        )

    # =========================================================================
    # Internal: Gateway Lookup
    # =========================================================================

    @classmethod
    def _look_up(cls, record: ReconciliationRecord) -> RecordOutcome:
        """Find out whether a sent refund or transfer exists at Stripe."""
        try:
            if record.operation == ReconciliationOperation.REFUND:
                external_id = cls._find_refund(record)
            else:
                external_id = cls._find_transfer(record)
        except GatewayError as e:
            cls.get_logger().warning(
                "Gateway lookup failed, will retry next run",
                extra={"record_id": str(record.id), "error_code": e.error_code},
            )
            return RecordOutcome(
                record_id=record.id,
                operation=record.operation,
                resolution=RecordResolution.STILL_PENDING,
                error=str(e),
            )

        if external_id is None:
            if record.operation == ReconciliationOperation.PAYOUT_TRANSFER:
                return cls._fail_unsent_transfer(record)

            ReconciliationRecord.objects.filter(pk=record.pk).update(
                local_status=LocalStatus.FAILED,
                last_error="Not found at gateway after timeout",
                updated_at=timezone.now(),
            )
            cls.get_logger().critical(
                "Sent operation not found at gateway - manual review",
                extra={
                    "record_id": str(record.id),
                    "operation": record.operation,
                    "idempotency_key": record.external_idempotency_key,
                },
            )
            return RecordOutcome(
                record_id=record.id,
                operation=record.operation,
                resolution=RecordResolution.FLAGGED_FOR_REVIEW,
            )

        ReconciliationRecord.objects.filter(pk=record.pk).update(
            gateway_status=GatewayStatus.CONFIRMED,
            external_id=external_id,
            last_error="",
            updated_at=timezone.now(),
        )
        cls.get_logger().info(
            "Found sent operation at gateway",
            extra={"record_id": str(record.id), "external_id": external_id},
        )
        return cls._apply(
            ReconciliationRecord.objects.get(pk=record.pk),
            resolution=RecordResolution.CONFIRMED_FROM_GATEWAY,
        )

    @classmethod
    def _fail_unsent_transfer(cls, record: ReconciliationRecord) -> RecordOutcome:
        """
        Fail the payout of a transfer Stripe never made.

        The record goes back to not_attempted so retry_payout sends the
        same idempotency key again.
        """
        now = timezone.now()
        with transaction.atomic():
            payout = Payout.objects.get(pk=record.payout_id)
            try:
                payout.fail(reason="Transfer not found at gateway after timeout", at=now)
                payout.save(update_fields=["status", "failure_reason", "failed_at", "updated_at"])
            except (TransitionNotAllowed, ConcurrentTransition) as e:
                cls.get_logger().warning(
                    "Could not fail payout of unsent transfer",
                    extra={"record_id": str(record.id), "payout_status": payout.status},
                )
                return RecordOutcome(
                    record_id=record.id,
                    operation=record.operation,
                    resolution=RecordResolution.STILL_PENDING,
                    error=str(e),
                )
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                gateway_status=GatewayStatus.NOT_ATTEMPTED,
                local_status=LocalStatus.PENDING,
                last_error="Not found at gateway after timeout",
                updated_at=now,
            )

        cls.get_logger().warning(
            "Transfer not found at gateway, payout failed for retry",
            extra={
                "record_id": str(record.id),
                "payout_id": str(record.payout_id),
                "idempotency_key": record.external_idempotency_key,
            },
        )
        return RecordOutcome(
            record_id=record.id,
            operation=record.operation,
            resolution=RecordResolution.FLAGGED_FOR_REVIEW,
            error="Transfer not found at gateway; payout failed",
        )

    @classmethod
    def _find_refund(cls, record: ReconciliationRecord) -> str | None:
        payment_intent_id = record.session.payment_intent_id
        refunds = cls.get_stripe_adapter().list_refunds(payment_intent_id)
        for refund in refunds:
            if refund.metadata.get("idempotency_key") == record.external_idempotency_key:
                return refund.id
        return None

    @classmethod
    def _find_transfer(cls, record: ReconciliationRecord) -> str | None:
        transfers = cls.get_stripe_adapter().list_recent_transfers(
            created_after=record.created_at - TRANSFER_LOOKUP_MARGIN,
        )
        payout_id = str(record.payout_id)
        for transfer in transfers:
            if transfer.metadata.get("payout_id") == payout_id:
                return transfer.id
        return None
