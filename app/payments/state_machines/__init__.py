"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    GatewayStatus,
    LocalStatus,
    PayoutStatus,
    ReconciliationOperation,
)

__all__ = [
    "GatewayStatus",
    "LocalStatus",
    "PayoutStatus",
    "ReconciliationOperation",
]
