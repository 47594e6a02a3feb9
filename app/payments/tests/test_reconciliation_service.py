"""
Tests for ReconciliationService.

Records are put directly into the half-finished states a crash or a
timeout would leave behind, then a run is expected to finish them
without ever creating a refund or transfer itself.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import ExpertSession
from bookings.services import RefundSaga
from bookings.state_machines import PaymentStatus, SessionStatus
from bookings.tests.factories import ExpertSessionFactory
from payments.adapters import RefundResult, TransferResult
from payments.exceptions import (
    ReconciliationLockError,
    StripeAPIUnavailableError,
    StripeTimeoutError,
)
from payments.models import Payout, ReconciliationRecord
from payments.services import PayoutService, ReconciliationService, RecordResolution
from payments.state_machines import GatewayStatus, LocalStatus, PayoutStatus
from payments.tests.factories import PayoutFactory, ReconciliationRecordFactory


def make_stuck(record, minutes: int = 60) -> None:
    ReconciliationRecord.objects.filter(pk=record.pk).update(
        updated_at=timezone.now() - timedelta(minutes=minutes)
    )


def reload(record) -> ReconciliationRecord:
    return ReconciliationRecord.objects.get(pk=record.pk)


@pytest.fixture
def refund_record(interviewer, refund_closure_payload):
    """Card-paid scheduled session with a refund record that never finished."""

    def _create(gateway_status, external_id=None):
        session = ExpertSessionFactory(interviewer=interviewer, scheduled=True)
        return ReconciliationRecordFactory(
            operation="refund",
            session=session,
            external_idempotency_key=RefundSaga.idempotency_key(session.id),
            external_id=external_id,
            amount_cents=10000,
            gateway_status=gateway_status,
            payload=refund_closure_payload,
        )

    return _create


@pytest.fixture
def transfer_record(interviewer, connected_account):
    """Pending payout with a transfer record that never finished."""

    def _create(gateway_status, external_id=None):
        payout = PayoutFactory(interviewer=interviewer, connected_account=connected_account)
        return ReconciliationRecordFactory(
            payout=payout,
            external_idempotency_key=PayoutService.idempotency_key(payout.id),
            external_id=external_id,
            gateway_status=gateway_status,
        )

    return _create


@pytest.mark.django_db
class TestConfirmedRecords:
    def test_confirmed_refund_is_applied(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.CONFIRMED, external_id="re_confirmed")

        result = ReconciliationService.run()

        assert result.success
        assert result.data.applied == 1
        assert result.data.records_checked == 1
        assert reload(record).local_status == LocalStatus.APPLIED

        session = ExpertSession.objects.get(pk=record.session_id)
        assert session.status == SessionStatus.CANCELLED
        assert session.payment_status == PaymentStatus.REFUNDED
        assert session.refund_id == "re_confirmed"

    def test_confirmed_transfer_completes_payout(
        self, transfer_record, mock_redis, stripe_adapter
    ):
        record = transfer_record(GatewayStatus.CONFIRMED, external_id="tr_confirmed")

        ReconciliationService.run()

        payout = Payout.objects.get(pk=record.payout_id)
        assert payout.status == PayoutStatus.COMPLETED
        assert payout.stripe_transfer_id == "tr_confirmed"
        assert reload(record).local_status == LocalStatus.APPLIED

    def test_refund_for_completed_session_is_flagged(
        self, interviewer, refund_closure_payload, mock_redis, stripe_adapter
    ):
        session = ExpertSessionFactory(interviewer=interviewer, completed=True)
        record = ReconciliationRecordFactory(
            operation="refund",
            session=session,
            external_id="re_late",
            amount_cents=10000,
            gateway_status=GatewayStatus.CONFIRMED,
            payload=refund_closure_payload,
        )

        result = ReconciliationService.run()

        assert result.data.flagged_for_review == 1
        assert reload(record).local_status == LocalStatus.FAILED

    def test_applied_records_are_left_alone(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.CONFIRMED, external_id="re_done")
        ReconciliationRecord.objects.filter(pk=record.pk).update(local_status=LocalStatus.APPLIED)

        result = ReconciliationService.run()

        assert result.data.records_checked == 0


@pytest.mark.django_db
class TestSentRecords:
    def test_refund_found_at_gateway(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.SENT)
        make_stuck(record)
        stripe_adapter.list_refunds.return_value = [
            RefundResult(
                id="re_found",
                amount_cents=10000,
                currency="usd",
                status="succeeded",
                payment_intent_id=record.session.payment_intent_id,
                metadata={"idempotency_key": record.external_idempotency_key},
            )
        ]

        result = ReconciliationService.run()

        assert result.data.confirmed_from_gateway == 1
        assert result.data.applied == 1
        stored = reload(record)
        assert stored.gateway_status == GatewayStatus.CONFIRMED
        assert stored.local_status == LocalStatus.APPLIED
        assert stored.external_id == "re_found"
        assert ExpertSession.objects.get(pk=record.session_id).refund_id == "re_found"
        stripe_adapter.list_refunds.assert_called_once_with(record.session.payment_intent_id)

    def test_refund_with_other_key_does_not_match(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.SENT)
        make_stuck(record)
        stripe_adapter.list_refunds.return_value = [
            RefundResult(
                id="re_other",
                amount_cents=5000,
                currency="usd",
                status="succeeded",
                payment_intent_id=record.session.payment_intent_id,
                metadata={"idempotency_key": "refund:someone-else:1:abcd"},
            )
        ]

        result = ReconciliationService.run()

        assert result.data.flagged_for_review == 1
        assert reload(record).local_status == LocalStatus.FAILED

    def test_missing_refund_is_flagged(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.SENT)
        make_stuck(record)

        result = ReconciliationService.run()

        assert result.data.flagged_for_review == 1
        stored = reload(record)
        assert stored.local_status == LocalStatus.FAILED
        assert stored.last_error == "Not found at gateway after timeout"
        assert ExpertSession.objects.get(pk=record.session_id).status == SessionStatus.SCHEDULED

    def test_transfer_found_by_payout_id(self, transfer_record, mock_redis, stripe_adapter):
        record = transfer_record(GatewayStatus.SENT)
        make_stuck(record)
        stripe_adapter.list_recent_transfers.return_value = [
            TransferResult(
                id="tr_found",
                amount_cents=8500,
                currency="usd",
                destination_account="acct_interviewer",
                metadata={"payout_id": str(record.payout_id)},
            )
        ]

        result = ReconciliationService.run()

        assert result.data.confirmed_from_gateway == 1
        assert Payout.objects.get(pk=record.payout_id).status == PayoutStatus.COMPLETED

    def test_missing_transfer_fails_payout_for_retry(
        self, interviewer, connected_account, earned_sessions, mock_redis, stripe_adapter
    ):
        stripe_adapter.transfer.side_effect = StripeTimeoutError("Stripe did not respond")
        payout = PayoutService.request_payout(interviewer.id)
        record = ReconciliationRecord.objects.get(payout=payout)
        make_stuck(record, minutes=24 * 60)

        result = ReconciliationService.run()

        assert result.data.flagged_for_review == 1
        failed = Payout.objects.get(pk=payout.pk)
        assert failed.status == PayoutStatus.FAILED
        stored = reload(record)
        assert stored.gateway_status == GatewayStatus.NOT_ATTEMPTED
        assert stored.local_status == LocalStatus.PENDING
        assert ExpertSession.objects.filter(payout_id=payout.id).count() == 2

        stripe_adapter.transfer.side_effect = None
        retried = PayoutService.retry_payout(payout.id)

        assert retried.success
        assert retried.data.status == PayoutStatus.COMPLETED
        keys = {c.kwargs["idempotency_key"] for c in stripe_adapter.transfer.call_args_list}
        assert keys == {record.external_idempotency_key}

    def test_recent_sent_records_wait(self, refund_record, mock_redis, stripe_adapter):
        refund_record(GatewayStatus.SENT)

        result = ReconciliationService.run()

        assert result.data.records_checked == 0
        stripe_adapter.list_refunds.assert_not_called()

    def test_lookup_error_keeps_record_pending(self, refund_record, mock_redis, stripe_adapter):
        record = refund_record(GatewayStatus.SENT)
        make_stuck(record)
        stripe_adapter.list_refunds.side_effect = StripeAPIUnavailableError("Stripe is down")

        result = ReconciliationService.run()

        assert result.data.still_pending == 1
        stored = reload(record)
        assert stored.gateway_status == GatewayStatus.SENT
        assert stored.local_status == LocalStatus.PENDING

    def test_never_creates_money_movements(
        self, refund_record, transfer_record, mock_redis, stripe_adapter
    ):
        make_stuck(refund_record(GatewayStatus.SENT))
        make_stuck(transfer_record(GatewayStatus.SENT))
        refund_record(GatewayStatus.NOT_ATTEMPTED)

        ReconciliationService.run()

        stripe_adapter.refund.assert_not_called()
        stripe_adapter.transfer.assert_not_called()


@pytest.mark.django_db
class TestRunLock:
    def test_concurrent_run_is_refused(self, mock_redis, stripe_adapter):
        mock_redis.set.return_value = False

        with pytest.raises(ReconciliationLockError):
            ReconciliationService.run()

    def test_lock_released_after_run(self, mock_redis, stripe_adapter):
        ReconciliationService.run()

        assert mock_redis.set.call_args.args[0] == "lock:reconciliation:run"
        mock_redis.eval.assert_called_once()


@pytest.mark.django_db
class TestReconcileRecord:
    def test_unknown_record(self, stripe_adapter):
        result = ReconciliationService.reconcile_record("00000000-0000-0000-0000-000000000000")

        assert not result.success
        assert result.error_code == "RECORD_NOT_FOUND"

    def test_applied_record_needs_nothing(self, refund_record, stripe_adapter):
        record = refund_record(GatewayStatus.CONFIRMED, external_id="re_done")
        ReconciliationRecord.objects.filter(pk=record.pk).update(local_status=LocalStatus.APPLIED)

        result = ReconciliationService.reconcile_record(record.id)

        assert result.success
        assert result.data is None

    def test_sent_record_is_looked_up_immediately(self, refund_record, stripe_adapter):
        record = refund_record(GatewayStatus.SENT)

        result = ReconciliationService.reconcile_record(record.id)

        assert result.data.resolution == RecordResolution.FLAGGED_FOR_REVIEW
        stripe_adapter.list_refunds.assert_called_once()

    def test_confirmed_record_is_applied(self, transfer_record, stripe_adapter):
        record = transfer_record(GatewayStatus.CONFIRMED, external_id="tr_ok")

        result = ReconciliationService.reconcile_record(record.id)

        assert result.data.resolution == RecordResolution.APPLIED
        assert result.data.external_id == "tr_ok"
