"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os
from unittest.mock import MagicMock, patch

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # The test client speaks plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full booking-to-payout journeys)
    - test_views.py, test_*_service.py, test_tasks.py, etc. → integration
    - test_models.py, test_policies.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_workers.py",
        "test_session_ledger.py",
        "test_coaching_ledger.py",
        "test_booking_service.py",
        "test_refund_saga.py",
        "test_cancellation_service.py",
        "test_payout_service.py",
        "test_reconciliation_service.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_policies.py",
        "test_exceptions.py",
        "test_stripe_adapter.py",
        "test_locks.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            # Default: integration (safe for Django where most tests hit DB)
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """DRF test client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def mock_redis():
    """Redis connection used by DistributedLock, replaced by a mock."""
    mock_conn = MagicMock()
    mock_conn.set.return_value = True
    mock_conn.get.return_value = None
    mock_conn.delete.return_value = 1
    mock_conn.eval.return_value = 1

    with patch("payments.locks.get_redis_connection", return_value=mock_conn):
        yield mock_conn


@pytest.fixture
def stripe_adapter():
    """
    Mock Stripe adapter installed on every service that calls Stripe.

    Defaults answer as a healthy gateway would; tests override return
    values or side effects as needed.
    """
    from bookings.services import BookingService, RefundSaga
    from payments.adapters import PaymentIntentResult, RefundResult, TransferResult
    from payments.services import PayoutService, ReconciliationService

    adapter = MagicMock()
    adapter.charge.return_value = PaymentIntentResult(
        id="pi_test_charge",
        status="succeeded",
        amount_cents=10000,
        currency="usd",
    )
    adapter.refund.return_value = RefundResult(
        id="re_test_123",
        amount_cents=10000,
        currency="usd",
        status="succeeded",
        payment_intent_id="pi_test_charge",
    )
    adapter.transfer.return_value = TransferResult(
        id="tr_test_123",
        amount_cents=8500,
        currency="usd",
        destination_account="acct_test",
    )
    adapter.list_refunds.return_value = []
    adapter.list_recent_transfers.return_value = []

    services = [BookingService, RefundSaga, PayoutService, ReconciliationService]
    for service in services:
        service.set_stripe_adapter(adapter)
    yield adapter
    for service in services:
        service.set_stripe_adapter(None)
