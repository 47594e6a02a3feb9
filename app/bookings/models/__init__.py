"""
Booking models.

Models:
- ExpertSession: One interview session and its money state
- CoachingPackage: Prepaid session credits
"""

from bookings.models.coaching_package import (
    PACKAGE_PRICES_CENTS,
    PACKAGE_SESSION_COUNTS,
    PACKAGE_VALIDITY_DAYS,
    CoachingPackage,
)
from bookings.models.expert_session import ExpertSession

__all__ = [
    "PACKAGE_PRICES_CENTS",
    "PACKAGE_SESSION_COUNTS",
    "PACKAGE_VALIDITY_DAYS",
    "CoachingPackage",
    "ExpertSession",
]
