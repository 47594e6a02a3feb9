"""
RefundSaga: refund a session's payment and close the session.

The refund is an external side effect, so it runs in three steps with a
durable ReconciliationRecord tying them together:

    1. Write the intent record (key derived from the session id).
    2. Call Stripe with that key, outside any database transaction.
    3. Close the session with the refund fields and mark the record applied.

If step 2 times out the record stays "sent" and the reconciler looks the
refund up later. If step 3 fails after Stripe confirmed, the record stays
"confirmed/pending" and the reconciler re-applies it. Either way the
caller gets ReconciliationRequired instead of an error.

Usage:
    closure = SessionClosure(
        target_status=SessionStatus.CANCELLED,
        reason="Cancelled by candidate",
        at=now,
        refund_percentage=100,
    )
    result = RefundSaga.execute(session, amount_cents=10000, closure=closure)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from bookings.exceptions import InvalidTransitionError, StaleStateError
from bookings.services.session_ledger import SessionLedger
from core.exceptions import ValidationError
from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import GatewayError, ReconciliationRequired
from payments.models import ReconciliationRecord
from payments.state_machines import GatewayStatus, LocalStatus, ReconciliationOperation

if TYPE_CHECKING:
    from datetime import datetime

    from bookings.models import ExpertSession


@dataclass(frozen=True)
class SessionClosure:
    """
    How the session should be closed once the refund is confirmed.

    Stored in the record payload so the reconciler can finish the close
    without the original request.
    """

    target_status: str
    reason: str
    at: datetime
    refund_percentage: int = 0
    refund_reason: str = ""
    no_show_party: str = ""

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["at"] = self.at.isoformat()
        payload["target_status"] = str(self.target_status)
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> SessionClosure:
        return cls(
            target_status=payload["target_status"],
            reason=payload.get("reason", ""),
            at=parse_datetime(payload["at"]),
            refund_percentage=payload.get("refund_percentage", 0),
            refund_reason=payload.get("refund_reason", ""),
            no_show_party=payload.get("no_show_party", ""),
        )


@dataclass
class RefundSagaResult:
    session: ExpertSession
    record: ReconciliationRecord
    refund_id: str


class RefundSaga(BaseService):
    """
    Intent record, gateway call, local apply.

    Operations:
        execute: Run all three steps for a session
        apply_local: Step three on its own (used by the reconciler)
    """

    _stripe_adapter = None

    @classmethod
    def get_stripe_adapter(cls):
        if cls._stripe_adapter is None:
            return StripeAdapter
        return cls._stripe_adapter

    @classmethod
    def set_stripe_adapter(cls, adapter) -> None:
        cls._stripe_adapter = adapter

    @classmethod
    def idempotency_key(cls, session_id) -> str:
        return IdempotencyKeyGenerator.generate("refund", session_id)

    # =========================================================================
    # Saga
    # =========================================================================

    @classmethod
    def execute(
        cls,
        session: ExpertSession,
        amount_cents: int,
        closure: SessionClosure,
    ) -> RefundSagaResult:
        """
        Refund ``amount_cents`` of the session payment and close the session.

        Raises:
            GatewayError: Stripe definitely rejected the refund; the
                session is unchanged and a retry is safe
            ReconciliationRequired: Refund sent or confirmed but the
                session is not yet closed
        """
        logger = cls.get_logger()

        if not session.payment_intent_id:
            raise ValidationError(
                "Session has no card payment to refund",
                error_code="NO_PAYMENT_TO_REFUND",
                details={"session_id": str(session.id)},
            )
        if not 0 < amount_cents <= session.price_in_cents:
            raise ValidationError(
                "Refund amount is out of range",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount_cents": amount_cents, "price_in_cents": session.price_in_cents},
            )

        record = cls._write_intent(session, amount_cents, closure)

        if record.local_status == LocalStatus.APPLIED:
            logger.info(
                "Refund already applied",
                extra={"session_id": str(session.id), "record_id": str(record.id)},
            )
            return RefundSagaResult(
                session=SessionLedger.get_session(session.id),
                record=record,
                refund_id=record.external_id,
            )

        if record.gateway_status != GatewayStatus.CONFIRMED:
            refund_id = cls._send_refund(record, session)
            record = cls._mark_confirmed(record, refund_id)
        else:
            logger.info(
                "Refund already confirmed by gateway, skipping call",
                extra={"record_id": str(record.id), "refund_id": record.external_id},
            )

        closed = cls.apply_local(record)
        return RefundSagaResult(session=closed, record=record, refund_id=record.external_id)

    @classmethod
    def _write_intent(
        cls,
        session: ExpertSession,
        amount_cents: int,
        closure: SessionClosure,
    ) -> ReconciliationRecord:
        key = cls.idempotency_key(session.id)
        with transaction.atomic():
            record, created = ReconciliationRecord.objects.select_for_update().get_or_create(
                external_idempotency_key=key,
                defaults={
                    "operation": ReconciliationOperation.REFUND,
                    "session": session,
                    "amount_cents": amount_cents,
                    "payload": closure.to_payload(),
                },
            )
            if not created and record.gateway_status == GatewayStatus.NOT_ATTEMPTED:
                # Nothing reached Stripe yet, so the latest request wins
                record.amount_cents = amount_cents
                record.payload = closure.to_payload()
                record.save(update_fields=["amount_cents", "payload", "updated_at"])

        cls.get_logger().info(
            "Refund intent recorded",
            extra={
                "session_id": str(session.id),
                "record_id": str(record.id),
                "record_created": created,
                "gateway_status": record.gateway_status,
                "amount_cents": record.amount_cents,
            },
        )
        return record

    @classmethod
    def _send_refund(cls, record: ReconciliationRecord, session: ExpertSession) -> str:
        logger = cls.get_logger()
        ReconciliationRecord.objects.filter(pk=record.pk).update(
            gateway_status=GatewayStatus.SENT,
            attempts=F("attempts") + 1,
            updated_at=timezone.now(),
        )

        try:
            refund = cls.get_stripe_adapter().refund(
                payment_intent_id=session.payment_intent_id,
                amount_cents=record.amount_cents,
                idempotency_key=record.external_idempotency_key,
                metadata={
                    "session_id": str(session.id),
                    "reconciliation_record_id": str(record.id),
                    "idempotency_key": record.external_idempotency_key,
                },
            )
        except GatewayError as e:
            if e.outcome_unknown:
                ReconciliationRecord.objects.filter(pk=record.pk).update(
                    last_error=str(e),
                    updated_at=timezone.now(),
                )
                logger.critical(
                    "Refund outcome unknown - reconciliation needed",
                    extra={
                        "session_id": str(session.id),
                        "record_id": str(record.id),
                        "error": str(e),
                    },
                )
                raise ReconciliationRequired(
                    "Refund sent but not confirmed; it will be reconciled",
                    record_id=record.id,
                ) from e

            ReconciliationRecord.objects.filter(pk=record.pk).update(
                gateway_status=GatewayStatus.NOT_ATTEMPTED,
                last_error=str(e),
                updated_at=timezone.now(),
            )
            logger.error(
                "Refund rejected by gateway",
                extra={
                    "session_id": str(session.id),
                    "record_id": str(record.id),
                    "error_code": e.error_code,
                },
            )
            raise

        return refund.id

    @classmethod
    def _mark_confirmed(cls, record: ReconciliationRecord, refund_id: str) -> ReconciliationRecord:
        ReconciliationRecord.objects.filter(pk=record.pk).update(
            gateway_status=GatewayStatus.CONFIRMED,
            external_id=refund_id,
            last_error="",
            updated_at=timezone.now(),
        )
        return ReconciliationRecord.objects.get(pk=record.pk)

    # =========================================================================
    # Local apply
    # =========================================================================

    @classmethod
    def apply_local(cls, record: ReconciliationRecord) -> ExpertSession:
        """
        Close the session for a confirmed refund and mark the record applied.

        Safe to call repeatedly: a session already in the target status is
        returned as is and the record is still marked applied.

        Raises:
            ReconciliationRequired: The local write failed. The record is
                left pending for a retry, or marked failed when the session
                reached a different terminal status and needs an operator.
            StaleStateError: The session moved while it was being closed. The
                record stays confirmed for the caller or the reconciler.
        """
        logger = cls.get_logger()
        closure = SessionClosure.from_payload(record.payload)

        try:
            with transaction.atomic():
                session = SessionLedger.apply_cancellation(
                    record.session_id,
                    closure.target_status,
                    closure.reason,
                    closure.at,
                    refund_id=record.external_id,
                    refund_amount_cents=record.amount_cents,
                    refund_percentage=closure.refund_percentage,
                    refund_reason=closure.refund_reason,
                    no_show_party=closure.no_show_party,
                )
                ReconciliationRecord.objects.filter(pk=record.pk).update(
                    local_status=LocalStatus.APPLIED,
                    applied_at=timezone.now(),
                    last_error="",
                    updated_at=timezone.now(),
                )
        except InvalidTransitionError as e:
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                local_status=LocalStatus.FAILED,
                last_error=str(e),
                updated_at=timezone.now(),
            )
            logger.critical(
                "Refund confirmed but session cannot be closed - manual review",
                extra={
                    "record_id": str(record.id),
                    "session_id": str(record.session_id),
                    "refund_id": record.external_id,
                    "error": str(e),
                },
            )
            raise ReconciliationRequired(
                "Refund confirmed but the session could not be closed",
                record_id=record.id,
            ) from e
        except StaleStateError:
            raise
        except Exception as e:
            ReconciliationRecord.objects.filter(pk=record.pk).update(
                last_error=str(e),
                updated_at=timezone.now(),
            )
            logger.critical(
                "Refund confirmed but local update failed - reconciliation needed",
                extra={
                    "record_id": str(record.id),
                    "session_id": str(record.session_id),
                    "refund_id": record.external_id,
                    "error": str(e),
                },
            )
            raise ReconciliationRequired(
                "Refund confirmed; the session will be updated by reconciliation",
                record_id=record.id,
            ) from e

        logger.info(
            "Refund applied",
            extra={
                "record_id": str(record.id),
                "session_id": str(session.id),
                "status": session.status,
                "payment_status": session.payment_status,
            },
        )
        return session


__all__ = [
    "RefundSaga",
    "RefundSagaResult",
    "SessionClosure",
]
