"""
Tests for RefundSaga.

The saga writes its intent record first, calls Stripe outside any
transaction and closes the session last. These tests stop it after each
step and check what is left for the reconciler.
"""

from unittest.mock import patch

import pytest
from django.utils import timezone

from bookings.exceptions import StaleStateError
from bookings.models import ExpertSession
from bookings.services import RefundSaga, SessionClosure
from bookings.state_machines import PaymentStatus, SessionStatus
from bookings.tests.factories import ExpertSessionFactory
from core.exceptions import ValidationError
from payments.exceptions import (
    ReconciliationRequired,
    StripeInvalidRequestError,
    StripeTimeoutError,
)
from payments.models import ReconciliationRecord
from payments.state_machines import GatewayStatus, LocalStatus, ReconciliationOperation


@pytest.fixture
def closure():
    return SessionClosure(
        target_status=SessionStatus.CANCELLED,
        reason="Cancelled by candidate: Full refund (24+ hours notice)",
        at=timezone.now(),
        refund_percentage=100,
        refund_reason="Full refund (24+ hours notice)",
    )


def record_for(session) -> ReconciliationRecord:
    return ReconciliationRecord.objects.get(session=session)


@pytest.mark.django_db
class TestSessionClosurePayload:
    def test_payload_survives_a_round_trip(self, closure):
        restored = SessionClosure.from_payload(closure.to_payload())

        assert restored == closure


@pytest.mark.django_db
class TestRefundSagaHappyPath:
    def test_refunds_and_closes_session(self, scheduled_session, closure, stripe_adapter):
        result = RefundSaga.execute(scheduled_session, 10000, closure)

        assert result.refund_id == "re_test_123"
        session = ExpertSession.objects.get(pk=scheduled_session.pk)
        assert session.status == SessionStatus.CANCELLED
        assert session.payment_status == PaymentStatus.REFUNDED
        assert session.refund_id == "re_test_123"

        record = record_for(scheduled_session)
        assert record.operation == ReconciliationOperation.REFUND
        assert record.gateway_status == GatewayStatus.CONFIRMED
        assert record.local_status == LocalStatus.APPLIED
        assert record.external_id == "re_test_123"
        assert record.attempts == 1

    def test_stripe_receives_the_record_key(self, scheduled_session, closure, stripe_adapter):
        RefundSaga.execute(scheduled_session, 5000, closure)

        kwargs = stripe_adapter.refund.call_args.kwargs
        record = record_for(scheduled_session)
        assert kwargs["idempotency_key"] == record.external_idempotency_key
        assert kwargs["idempotency_key"] == RefundSaga.idempotency_key(scheduled_session.id)
        assert kwargs["metadata"]["idempotency_key"] == record.external_idempotency_key
        assert kwargs["amount_cents"] == 5000

    def test_repeat_after_apply_does_not_call_stripe_again(
        self, scheduled_session, closure, stripe_adapter
    ):
        RefundSaga.execute(scheduled_session, 10000, closure)

        result = RefundSaga.execute(scheduled_session, 10000, closure)

        assert stripe_adapter.refund.call_count == 1
        assert result.refund_id == "re_test_123"
        assert ReconciliationRecord.objects.count() == 1


@pytest.mark.django_db
class TestRefundSagaPreconditions:
    def test_package_session_has_nothing_to_refund(self, package_session, closure, stripe_adapter):
        with pytest.raises(ValidationError) as exc_info:
            RefundSaga.execute(package_session, 10000, closure)

        assert exc_info.value.error_code == "NO_PAYMENT_TO_REFUND"
        stripe_adapter.refund.assert_not_called()

    @pytest.mark.parametrize("amount", [0, -1, 10001])
    def test_amount_out_of_range(self, scheduled_session, closure, stripe_adapter, amount):
        with pytest.raises(ValidationError) as exc_info:
            RefundSaga.execute(scheduled_session, amount, closure)

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"
        assert not ReconciliationRecord.objects.exists()


@pytest.mark.django_db
class TestRefundSagaGatewayFailures:
    def test_definite_rejection_leaves_session_untouched(
        self, scheduled_session, closure, stripe_adapter
    ):
        stripe_adapter.refund.side_effect = StripeInvalidRequestError(
            "Charge has already been refunded."
        )

        with pytest.raises(StripeInvalidRequestError):
            RefundSaga.execute(scheduled_session, 10000, closure)

        session = ExpertSession.objects.get(pk=scheduled_session.pk)
        assert session.status == SessionStatus.SCHEDULED
        assert session.payment_status == PaymentStatus.PAID

        record = record_for(scheduled_session)
        assert record.gateway_status == GatewayStatus.NOT_ATTEMPTED
        assert record.local_status == LocalStatus.PENDING
        assert "already been refunded" in record.last_error

    def test_retry_after_rejection_reuses_key(self, scheduled_session, closure, stripe_adapter):
        stripe_adapter.refund.side_effect = [
            StripeInvalidRequestError("Temporary problem"),
            stripe_adapter.refund.return_value,
        ]
        with pytest.raises(StripeInvalidRequestError):
            RefundSaga.execute(scheduled_session, 10000, closure)

        RefundSaga.execute(scheduled_session, 10000, closure)

        keys = {c.kwargs["idempotency_key"] for c in stripe_adapter.refund.call_args_list}
        assert len(keys) == 1
        assert record_for(scheduled_session).attempts == 2

    def test_timeout_requires_reconciliation(self, scheduled_session, closure, stripe_adapter):
        stripe_adapter.refund.side_effect = StripeTimeoutError("Stripe did not respond")

        with pytest.raises(ReconciliationRequired) as exc_info:
            RefundSaga.execute(scheduled_session, 10000, closure)

        record = record_for(scheduled_session)
        assert exc_info.value.record_id == record.id
        assert record.gateway_status == GatewayStatus.SENT
        assert record.local_status == LocalStatus.PENDING
        assert ExpertSession.objects.get(pk=scheduled_session.pk).status == SessionStatus.SCHEDULED


@pytest.mark.django_db
class TestApplyLocal:
    def test_local_failure_leaves_confirmed_record(
        self, scheduled_session, closure, stripe_adapter
    ):
        with patch(
            "bookings.services.refund_saga.SessionLedger.apply_cancellation",
            side_effect=RuntimeError("database went away"),
        ):
            with pytest.raises(ReconciliationRequired):
                RefundSaga.execute(scheduled_session, 10000, closure)

        record = record_for(scheduled_session)
        assert record.gateway_status == GatewayStatus.CONFIRMED
        assert record.local_status == LocalStatus.PENDING
        assert record.external_id == "re_test_123"

    def test_concurrent_move_propagates_as_stale(
        self, scheduled_session, closure, stripe_adapter
    ):
        with patch(
            "bookings.services.refund_saga.SessionLedger.apply_cancellation",
            side_effect=StaleStateError("moved", expected_status=SessionStatus.SCHEDULED),
        ):
            with pytest.raises(StaleStateError):
                RefundSaga.execute(scheduled_session, 10000, closure)

        record = record_for(scheduled_session)
        assert record.gateway_status == GatewayStatus.CONFIRMED
        assert record.local_status == LocalStatus.PENDING

    def test_re_apply_closes_session(self, scheduled_session, closure, stripe_adapter):
        with patch(
            "bookings.services.refund_saga.SessionLedger.apply_cancellation",
            side_effect=RuntimeError("database went away"),
        ):
            with pytest.raises(ReconciliationRequired):
                RefundSaga.execute(scheduled_session, 10000, closure)

        session = RefundSaga.apply_local(record_for(scheduled_session))

        assert session.status == SessionStatus.CANCELLED
        assert session.payment_status == PaymentStatus.REFUNDED
        assert record_for(scheduled_session).local_status == LocalStatus.APPLIED

    def test_session_in_other_terminal_status_is_flagged(
        self, candidate, interviewer, closure, stripe_adapter
    ):
        session = ExpertSessionFactory(candidate=candidate, interviewer=interviewer, completed=True)
        record = ReconciliationRecord.objects.create(
            operation=ReconciliationOperation.REFUND,
            session=session,
            external_idempotency_key=RefundSaga.idempotency_key(session.id),
            external_id="re_orphan",
            amount_cents=10000,
            gateway_status=GatewayStatus.CONFIRMED,
            payload=closure.to_payload(),
        )

        with pytest.raises(ReconciliationRequired):
            RefundSaga.apply_local(record)

        record = ReconciliationRecord.objects.get(pk=record.pk)
        assert record.local_status == LocalStatus.FAILED
        assert ExpertSession.objects.get(pk=session.pk).status == SessionStatus.COMPLETED
