"""
Pytest fixtures for booking tests.

Fixtures hand out sessions in the status a test needs. Shared fixtures
(api_client, mock_redis, stripe_adapter) live in the root conftest.

Usage:
    def test_cancel_refunds_in_full(scheduled_session, stripe_adapter):
        result = CancellationService.cancel(scheduled_session.id, scheduled_session.candidate_id)
        assert result.refund.percentage == 100
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from bookings.state_machines import PaymentStatus, SessionStatus
from bookings.tests.factories import (
    CoachingPackageFactory,
    ExpertSessionFactory,
    UserFactory,
)


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def candidate(db):
    return UserFactory()


@pytest.fixture
def interviewer(db):
    return UserFactory()


@pytest.fixture
def outsider(db):
    """A user who is part of no session."""
    return UserFactory()


# =============================================================================
# Sessions
# =============================================================================


@pytest.fixture
def pending_session(candidate, interviewer):
    """Session awaiting card payment, three days out."""
    return ExpertSessionFactory(candidate=candidate, interviewer=interviewer)


@pytest.fixture
def scheduled_session(candidate, interviewer):
    """Card-paid session three days out."""
    return ExpertSessionFactory(candidate=candidate, interviewer=interviewer, scheduled=True)


@pytest.fixture
def coaching_package(candidate):
    return CoachingPackageFactory(user=candidate)


@pytest.fixture
def package_session(candidate, interviewer, coaching_package):
    """Session paid with one credit of a three-session package."""
    coaching_package.remaining_sessions = 2
    coaching_package.used_sessions = 1
    coaching_package.save()
    return ExpertSessionFactory(
        candidate=candidate,
        interviewer=interviewer,
        coaching_package=coaching_package,
        status=SessionStatus.SCHEDULED,
        payment_status=PaymentStatus.PAID,
    )


@pytest.fixture
def past_session(candidate, interviewer):
    """Paid session that started an hour ago and was never opened."""
    return ExpertSessionFactory(
        candidate=candidate,
        interviewer=interviewer,
        scheduled=True,
        scheduled_at=timezone.now() - timedelta(hours=1),
    )
