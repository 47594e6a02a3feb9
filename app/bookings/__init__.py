"""
Bookings app for expert interview sessions.

This app handles:
- Session lifecycle (pending payment, scheduled, in progress, terminal states)
- Cancellation and no-show handling with refund policy
- Coaching package credits

Related apps:
    - payments: Stripe adapter, refunds and interviewer payouts

Usage:
    from bookings.services import CancellationService

    result = CancellationService.cancel(session_id, requester_id=user.id)
"""
