"""
Payment services for coordinating money movements.

This module provides:
- PayoutService: Batches interviewer earnings into transfers
- ReconciliationService: Finishes refunds and transfers that stopped half-way

Usage:
    from payments.services import PayoutService

    payout = PayoutService.request_payout(interviewer.id)

    from payments.services import ReconciliationService

    result = ReconciliationService.run()
"""

from payments.services.payout_service import PayoutService, PayoutSummary
from payments.services.reconciliation_service import (
    ReconciliationRunResult,
    ReconciliationService,
    RecordOutcome,
    RecordResolution,
)

__all__ = [
    "PayoutService",
    "PayoutSummary",
    "ReconciliationRunResult",
    "ReconciliationService",
    "RecordOutcome",
    "RecordResolution",
]
