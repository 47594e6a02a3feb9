"""
End-to-end journeys from booking to payout or refund.

Stripe is the only thing mocked; every ledger, policy and service runs
for real against the test database.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.models import CoachingPackage, ExpertSession
from bookings.services import (
    BookingService,
    CancellationService,
    CoachingLedger,
    SessionLedger,
)
from bookings.state_machines import CoachingPackageType, PaymentStatus, SessionStatus
from payments.exceptions import NoEligibleFundsError
from payments.services import PayoutService
from payments.state_machines import PayoutStatus
from payments.tests.factories import ConnectedAccountFactory


@pytest.fixture
def slot():
    return (timezone.now() + timedelta(days=3)).replace(microsecond=0)


@pytest.mark.django_db
class TestBookToPayout:
    def test_paid_session_is_paid_out_once(self, candidate, interviewer, slot, stripe_adapter):
        ConnectedAccountFactory(user=interviewer, stripe_account_id="acct_journey")

        session = BookingService.book_session(
            candidate_id=candidate.id,
            interviewer_id=interviewer.id,
            scheduled_at=slot,
            price_in_cents=10000,
        )
        assert session.status == SessionStatus.PENDING_PAYMENT

        session = BookingService.pay_session(session.id, "pm_card_visa", payer_id=candidate.id)
        assert session.status == SessionStatus.SCHEDULED
        assert session.payment_intent_id == "pi_test_charge"

        SessionLedger.start_session(session.id, candidate.id, now=slot - timedelta(minutes=5))
        SessionLedger.complete_session(session.id, now=slot + timedelta(minutes=60))

        payout = PayoutService.request_payout(interviewer.id)

        assert payout.status == PayoutStatus.COMPLETED
        assert payout.amount_cents == 8500
        assert ExpertSession.objects.get(pk=session.id).payout_id == payout.id
        assert stripe_adapter.transfer.call_args.kwargs["destination_account_id"] == (
            "acct_journey"
        )

        with pytest.raises(NoEligibleFundsError):
            PayoutService.request_payout(interviewer.id)


@pytest.mark.django_db
class TestBookToRefund:
    def test_cancelled_session_is_refunded_and_never_paid_out(
        self, candidate, interviewer, slot, stripe_adapter
    ):
        ConnectedAccountFactory(user=interviewer)
        session = BookingService.book_session(
            candidate_id=candidate.id,
            interviewer_id=interviewer.id,
            scheduled_at=slot,
            price_in_cents=10000,
        )
        BookingService.pay_session(session.id, "pm_card_visa")

        result = CancellationService.cancel(
            session.id, candidate.id, now=slot - timedelta(hours=48)
        )

        assert result.status == SessionStatus.CANCELLED
        assert result.refund.amount_cents == 10000
        stored = ExpertSession.objects.get(pk=session.id)
        assert stored.payment_status == PaymentStatus.REFUNDED

        with pytest.raises(NoEligibleFundsError):
            PayoutService.request_payout(interviewer.id)

    def test_package_session_credit_returns_on_cancel(
        self, candidate, interviewer, slot, stripe_adapter
    ):
        package = CoachingLedger.create_package(candidate.id, CoachingPackageType.THREE_SESSIONS)

        session = BookingService.book_session(
            candidate_id=candidate.id,
            interviewer_id=interviewer.id,
            scheduled_at=slot,
            price_in_cents=10000,
            coaching_package_id=package.id,
        )
        assert session.status == SessionStatus.SCHEDULED
        assert CoachingPackage.objects.get(pk=package.id).remaining_sessions == 2

        result = CancellationService.cancel(
            session.id, candidate.id, now=slot - timedelta(hours=48)
        )

        assert result.refund.package_session_returned is True
        stripe_adapter.refund.assert_not_called()
        assert CoachingPackage.objects.get(pk=package.id).remaining_sessions == 3
