"""
Payment models.

Models:
- ConnectedAccount: Interviewer's Stripe Connect account
- Payout: Transfer of accumulated session earnings
- ReconciliationRecord: Intent record for refunds and transfers
"""

from payments.models.connected_account import ConnectedAccount
from payments.models.payout import Payout
from payments.models.reconciliation_record import ReconciliationRecord

__all__ = [
    "ConnectedAccount",
    "Payout",
    "ReconciliationRecord",
]
