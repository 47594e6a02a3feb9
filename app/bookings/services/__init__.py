"""
Booking services.

SessionLedger is the only writer of session status. The other services
orchestrate it together with the coaching ledger and the refund saga.
"""

from bookings.services.booking_service import BookingService
from bookings.services.cancellation_service import (
    CancellationPreview,
    CancellationResult,
    CancellationService,
    RefundOutcome,
    can_cancel,
)
from bookings.services.coaching_ledger import CoachingLedger
from bookings.services.refund_saga import RefundSaga, RefundSagaResult, SessionClosure
from bookings.services.session_ledger import SessionLedger

__all__ = [
    "BookingService",
    "CancellationPreview",
    "CancellationResult",
    "CancellationService",
    "CoachingLedger",
    "RefundOutcome",
    "RefundSaga",
    "RefundSagaResult",
    "SessionClosure",
    "SessionLedger",
    "can_cancel",
]
