"""
Payments app for Stripe integration.

This app handles:
- Stripe calls through a single adapter (charge, refund, transfer, lookups)
- Interviewer payouts to Stripe Connect accounts
- Reconciliation records for refunds and transfers, and the worker
  that finishes them

Related apps:
    - bookings: Sessions whose payments are refunded and paid out

Usage:
    from payments.services import PayoutService

    payout = PayoutService.request_payout(interviewer.id)
"""
