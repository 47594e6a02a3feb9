"""
State machine enums for booking models.
"""

from bookings.state_machines.states import (
    CANCELLABLE_SESSION_STATUSES,
    TERMINAL_SESSION_STATUSES,
    CoachingPackageStatus,
    CoachingPackageType,
    NoShowParty,
    PaymentStatus,
    SessionStatus,
    SessionType,
)

__all__ = [
    "CANCELLABLE_SESSION_STATUSES",
    "TERMINAL_SESSION_STATUSES",
    "CoachingPackageStatus",
    "CoachingPackageType",
    "NoShowParty",
    "PaymentStatus",
    "SessionStatus",
    "SessionType",
]
