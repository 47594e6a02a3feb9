"""
Cancellation refund policy.

Pure functions: no database access, no clock reads. Callers pass the
current time so the same inputs always give the same answer.

Tiers (defaults, configurable in settings):
    >= 24 hours before start   100% refund
    >= 12 hours before start    50% refund
    less than 12 hours           0% refund
    already started              0% refund

Usage:
    from bookings.policies import refund_policy

    policy = refund_policy(session.scheduled_at, now)
    amount = policy.refund_amount(session.price_in_cents)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING

from django.conf import settings

if TYPE_CHECKING:
    from datetime import datetime


class RefundTier(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class RefundPolicyConfig:
    """Hour thresholds and the partial fraction."""

    full_refund_hours: float = 24
    partial_refund_hours: float = 12
    partial_refund_fraction: float = 0.5

    @classmethod
    def from_settings(cls) -> RefundPolicyConfig:
        return cls(
            full_refund_hours=getattr(settings, "CANCELLATION_FULL_REFUND_HOURS", 24),
            partial_refund_hours=getattr(settings, "CANCELLATION_PARTIAL_REFUND_HOURS", 12),
            partial_refund_fraction=getattr(
                settings, "CANCELLATION_PARTIAL_REFUND_FRACTION", 0.5
            ),
        )


@dataclass(frozen=True)
class RefundPolicy:
    """
    Outcome of the policy for one cancellation.

    Attributes:
        tier: Which band the notice period fell into
        refund_fraction: Share of the price to return, in [0, 1]
        reason: Human-readable explanation shown to the user
    """

    tier: RefundTier
    refund_fraction: float
    reason: str

    @property
    def percentage(self) -> int:
        return int(
            (Decimal(str(self.refund_fraction)) * 100).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )

    def refund_amount(self, price_in_cents: int) -> int:
        """Refund in cents, rounded half-up to a whole cent."""
        amount = (Decimal(price_in_cents) * Decimal(str(self.refund_fraction))).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return int(min(amount, price_in_cents))


def _hours(value: float) -> str:
    return f"{value:g}"


def refund_policy(
    scheduled_at: datetime,
    now: datetime,
    config: RefundPolicyConfig | None = None,
) -> RefundPolicy:
    """
    Decide the refund for cancelling a session that starts at ``scheduled_at``.

    Boundaries are inclusive on the generous side: exactly 24h before
    start gives a full refund, exactly 12h gives the partial one. A
    session that already started gives no refund.
    """
    config = config or RefundPolicyConfig.from_settings()
    hours_until_start = (scheduled_at - now).total_seconds() / 3600

    if hours_until_start >= config.full_refund_hours:
        return RefundPolicy(
            tier=RefundTier.FULL,
            refund_fraction=1.0,
            reason=f"Full refund ({_hours(config.full_refund_hours)}+ hours notice)",
        )

    if hours_until_start >= config.partial_refund_hours:
        return RefundPolicy(
            tier=RefundTier.PARTIAL,
            refund_fraction=config.partial_refund_fraction,
            reason=(
                f"Partial refund ({_hours(config.partial_refund_hours)}-"
                f"{_hours(config.full_refund_hours)} hours notice)"
            ),
        )

    if hours_until_start <= 0:
        return RefundPolicy(
            tier=RefundTier.NONE,
            refund_fraction=0.0,
            reason="Session has already started or passed",
        )

    return RefundPolicy(
        tier=RefundTier.NONE,
        refund_fraction=0.0,
        reason=f"No refund (less than {_hours(config.partial_refund_hours)} hours notice)",
    )


def no_show_policy(party: str) -> RefundPolicy:
    """
    Refund for a reported no-show.

    An absent interviewer means the candidate gets everything back; an
    absent candidate forfeits the session.
    """
    if party == "interviewer":
        return RefundPolicy(
            tier=RefundTier.FULL,
            refund_fraction=1.0,
            reason="Full refund (interviewer did not attend)",
        )
    return RefundPolicy(
        tier=RefundTier.NONE,
        refund_fraction=0.0,
        reason="No refund (candidate did not attend)",
    )


def platform_fee_split(price_in_cents: int, fee_percent: float | None = None) -> tuple[int, int]:
    """
    Split a price into (platform fee, interviewer payout).

    The fee is rounded half-up; the payout takes the remainder so the two
    always add up to the price.
    """
    if fee_percent is None:
        fee_percent = getattr(settings, "PLATFORM_FEE_PERCENT", 15)
    fee = int(
        (Decimal(price_in_cents) * Decimal(str(fee_percent)) / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return fee, price_in_cents - fee
