"""
Workers for async payment processing.

Celery tasks:
- run_scheduled_reconciliation: Periodic pass over unfinished records
- reconcile_single_record: On-demand reconciliation of one record

Usage:
    from payments.workers import run_scheduled_reconciliation, reconcile_single_record

    run_scheduled_reconciliation.delay()
    reconcile_single_record.delay(str(record_id))
"""

from payments.workers.reconciliation_worker import (
    reconcile_single_record,
    run_scheduled_reconciliation,
)

__all__ = [
    "reconcile_single_record",
    "run_scheduled_reconciliation",
]
