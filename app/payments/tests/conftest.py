"""
Pytest fixtures for payment tests.

Fixtures provide an interviewer with a ready connected account and
completed sessions whose earnings have not been paid out yet.

Usage:
    def test_payout(interviewer, connected_account, earned_sessions, stripe_adapter):
        payout = PayoutService.request_payout(interviewer.id)
        assert payout.amount_cents == 17000
"""

import pytest

from bookings.tests.factories import ExpertSessionFactory, UserFactory
from payments.tests.factories import ConnectedAccountFactory


@pytest.fixture
def interviewer(db):
    return UserFactory()


@pytest.fixture
def connected_account(interviewer):
    return ConnectedAccountFactory(user=interviewer, stripe_account_id="acct_interviewer")


@pytest.fixture
def earned_sessions(interviewer):
    """Two completed, paid sessions worth 8500 cents each to the interviewer."""
    return ExpertSessionFactory.create_batch(2, interviewer=interviewer, completed=True)


@pytest.fixture
def refund_closure_payload():
    """Closure payload of a full-refund cancellation."""
    return {
        "target_status": "cancelled",
        "reason": "Cancelled by candidate: Full refund (24+ hours notice)",
        "at": "2026-01-15T10:00:00+00:00",
        "refund_percentage": 100,
        "refund_reason": "Full refund (24+ hours notice)",
        "no_show_party": "",
    }
