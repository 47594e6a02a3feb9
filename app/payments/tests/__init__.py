"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Payout transitions and record constraints
- test_payout_service.py: Claims, transfers and retries
- test_reconciliation_service.py: Reconciler runs and gateway lookups
- test_workers.py: Celery task wrappers
- test_views.py: Payout API endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_payout_service.py
"""
