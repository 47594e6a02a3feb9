"""
Tests for the payment Celery tasks.

Tasks are called directly and their result dicts checked; the services
underneath are exercised for real with a mocked gateway.
"""

from unittest.mock import patch

import pytest

from payments.exceptions import StripeInvalidAccountError
from payments.models import Payout, ReconciliationRecord
from payments.services import PayoutService
from payments.state_machines import GatewayStatus, LocalStatus, PayoutStatus
from payments.tasks import retry_failed_payouts
from payments.tests.factories import PayoutFactory, ReconciliationRecordFactory
from payments.workers import reconcile_single_record, run_scheduled_reconciliation


@pytest.mark.django_db
class TestRunScheduledReconciliation:
    def test_reports_counters(self, interviewer, connected_account, mock_redis, stripe_adapter):
        payout = PayoutFactory(interviewer=interviewer, connected_account=connected_account)
        ReconciliationRecordFactory(
            payout=payout,
            external_id="tr_ok",
            gateway_status=GatewayStatus.CONFIRMED,
        )

        result = run_scheduled_reconciliation()

        assert result == {
            "status": "completed",
            "records_checked": 1,
            "applied": 1,
            "confirmed_from_gateway": 0,
            "flagged_for_review": 0,
            "still_pending": 0,
        }

    def test_skipped_when_another_run_holds_the_lock(self, mock_redis, stripe_adapter):
        mock_redis.set.return_value = False

        result = run_scheduled_reconciliation()

        assert result["status"] == "skipped"

    def test_unexpected_error_is_reported(self, mock_redis, stripe_adapter):
        with patch(
            "payments.services.ReconciliationService._run_with_lock",
            side_effect=RuntimeError("database unavailable"),
        ):
            result = run_scheduled_reconciliation()

        assert result["status"] == "failed"
        assert result["error_code"] == "UNEXPECTED_ERROR"
        mock_redis.eval.assert_called_once()


@pytest.mark.django_db
class TestReconcileSingleRecord:
    def test_invalid_id(self):
        result = reconcile_single_record("not-a-uuid")

        assert result["status"] == "failed"

    def test_missing_record(self):
        result = reconcile_single_record("00000000-0000-0000-0000-000000000000")

        assert result["status"] == "not_found"

    def test_reconciles_confirmed_record(self, interviewer, connected_account, stripe_adapter):
        payout = PayoutFactory(interviewer=interviewer, connected_account=connected_account)
        record = ReconciliationRecordFactory(
            payout=payout,
            external_id="tr_ok",
            gateway_status=GatewayStatus.CONFIRMED,
        )

        result = reconcile_single_record(str(record.id))

        assert result["status"] == "reconciled"
        assert result["resolution"] == "applied"
        assert ReconciliationRecord.objects.get(pk=record.pk).local_status == LocalStatus.APPLIED

    def test_nothing_to_do(self, interviewer, connected_account):
        payout = PayoutFactory(interviewer=interviewer, connected_account=connected_account)
        record = ReconciliationRecordFactory(payout=payout)

        result = reconcile_single_record(str(record.id))

        assert result["status"] == "ok"


@pytest.mark.django_db
class TestRetryFailedPayouts:
    def test_retries_failed_payouts(
        self, interviewer, connected_account, earned_sessions, stripe_adapter
    ):
        stripe_adapter.transfer.side_effect = [
            StripeInvalidAccountError("Account restricted"),
            stripe_adapter.transfer.return_value,
        ]
        failed = PayoutService.request_payout(interviewer.id)
        assert failed.status == PayoutStatus.FAILED

        result = retry_failed_payouts()

        assert result == {"status": "completed", "retried": 1, "succeeded": 1, "failed": 0}
        assert Payout.objects.get(pk=failed.pk).status == PayoutStatus.COMPLETED

    def test_gives_up_after_max_attempts(
        self, interviewer, connected_account, earned_sessions, stripe_adapter
    ):
        stripe_adapter.transfer.side_effect = StripeInvalidAccountError("Account restricted")
        failed = PayoutService.request_payout(interviewer.id)
        Payout.objects.filter(pk=failed.pk).update(attempts=5)

        result = retry_failed_payouts()

        assert result["retried"] == 0
        assert stripe_adapter.transfer.call_count == 1
