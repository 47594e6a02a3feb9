"""
Celery tasks for payment processing.

This module provides async tasks for:
- Retrying payouts whose transfer was rejected
- Reconciliation (re-exported from payments.workers)

Usage:
    from payments.tasks import retry_failed_payouts

    retry_failed_payouts.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


MAX_PAYOUT_ATTEMPTS = 5


@shared_task(bind=True)
def retry_failed_payouts(self, max_attempts: int = MAX_PAYOUT_ATTEMPTS) -> dict:
    """
    Retry FAILED payouts that have attempts left.

    Each retry reuses the payout's sessions and idempotency key, so a
    transfer Stripe already made is returned rather than repeated.
    """
    from payments.models import Payout
    from payments.services import PayoutService
    from payments.state_machines import PayoutStatus

    payout_ids = list(
        Payout.objects.filter(
            status=PayoutStatus.FAILED,
            attempts__lt=max_attempts,
        ).values_list("id", flat=True)
    )

    succeeded = 0
    failed = 0
    for payout_id in payout_ids:
        result = PayoutService.retry_payout(payout_id)
        if result.success:
            succeeded += 1
        else:
            failed += 1
            logger.warning(
                "Payout retry failed",
                extra={"payout_id": str(payout_id), "error_code": result.error_code},
            )

    return {"status": "completed", "retried": len(payout_ids), "succeeded": succeeded, "failed": failed}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here so
# Celery autodiscover finds them.

from payments.workers import (  # noqa: E402, F401
    reconcile_single_record,
    run_scheduled_reconciliation,
)
