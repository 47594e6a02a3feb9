"""
Reconciliation worker for periodic state consistency checks.

Tasks:
- run_scheduled_reconciliation: Periodic task that runs a full reconciliation pass
- reconcile_single_record: On-demand reconciliation of one ReconciliationRecord

The periodic schedule is stored in django-celery-beat (see the
payments 0002 migration).
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from payments.exceptions import ReconciliationLockError

logger = logging.getLogger(__name__)


DEFAULT_MAX_RECORDS = 500


# =============================================================================
# Periodic Task: Full Reconciliation Run
# =============================================================================


@shared_task(bind=True)
def run_scheduled_reconciliation(
    self,
    stuck_threshold_minutes: int | None = None,
    max_records: int = DEFAULT_MAX_RECORDS,
) -> dict:
    """
    Run a full reconciliation pass.

    Returns:
        Dict with:
        - status: "completed", "skipped" (lock held), or "failed"
        - records_checked, applied, confirmed_from_gateway,
          flagged_for_review, still_pending: run counters
        - error: Error message if failed

    Note:
        If another run holds the lock this task returns "skipped"
        immediately instead of waiting.
    """
    from payments.services import ReconciliationService

    logger.info(
        "Starting scheduled reconciliation run",
        extra={
            "stuck_threshold_minutes": stuck_threshold_minutes,
            "max_records": max_records,
        },
    )

    try:
        result = ReconciliationService.run(
            stuck_threshold_minutes=stuck_threshold_minutes,
            max_records=max_records,
        )
    except ReconciliationLockError:
        logger.info(
            "Reconciliation run skipped - another run in progress",
            extra={"task_id": self.request.id},
        )
        return {
            "status": "skipped",
            "reason": "Another reconciliation run is in progress",
        }
    except Exception as e:
        logger.exception(
            f"Unexpected error during reconciliation: {e}",
            extra={"error": str(e)},
        )
        return {
            "status": "failed",
            "error": str(e),
            "error_code": "UNEXPECTED_ERROR",
        }

    if not result.success:
        logger.error(
            f"Reconciliation failed: {result.error}",
            extra={"error": result.error, "error_code": result.error_code},
        )
        return {
            "status": "failed",
            "error": result.error,
            "error_code": result.error_code,
        }

    run_result = result.data
    return {
        "status": "completed",
        "records_checked": run_result.records_checked,
        "applied": run_result.applied,
        "confirmed_from_gateway": run_result.confirmed_from_gateway,
        "flagged_for_review": run_result.flagged_for_review,
        "still_pending": run_result.still_pending,
    }


# =============================================================================
# On-Demand Task: Single Record
# =============================================================================


@shared_task(bind=True)
def reconcile_single_record(self, record_id: str) -> dict:
    """
    Reconcile one ReconciliationRecord.

    Returns:
        Dict with status "ok" (nothing to do), "reconciled", "not_found"
        or "failed", plus the resolution when something was done.
    """
    from payments.services import ReconciliationService

    logger.info("Reconciling single record", extra={"record_id": record_id})

    try:
        record_uuid = UUID(record_id)
    except ValueError:
        logger.error(f"Invalid record_id format: {record_id}")
        return {
            "status": "failed",
            "record_id": record_id,
            "error": "Invalid UUID format",
        }

    result = ReconciliationService.reconcile_record(record_uuid)

    if not result.success:
        return {
            "status": "not_found" if result.error_code == "RECORD_NOT_FOUND" else "failed",
            "record_id": record_id,
            "error": result.error,
            "error_code": result.error_code,
        }

    outcome = result.data
    if outcome is None:
        return {
            "status": "ok",
            "record_id": record_id,
            "message": "Nothing to reconcile",
        }

    return {
        "status": "reconciled",
        "record_id": record_id,
        "resolution": outcome.resolution,
        "external_id": outcome.external_id,
        "error": outcome.error,
    }
