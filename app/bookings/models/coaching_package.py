"""
CoachingPackage model: a prepaid bundle of sessions.

Counters are only changed through CoachingLedger, which uses single
conditional UPDATE statements so that concurrent bookings cannot drive
remaining_sessions below zero.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from bookings.state_machines import CoachingPackageStatus, CoachingPackageType
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

PACKAGE_SESSION_COUNTS = {
    CoachingPackageType.THREE_SESSIONS: 3,
    CoachingPackageType.FIVE_SESSIONS: 5,
    CoachingPackageType.TEN_SESSIONS: 10,
}

PACKAGE_PRICES_CENTS = {
    CoachingPackageType.THREE_SESSIONS: 19900,
    CoachingPackageType.FIVE_SESSIONS: 29900,
    CoachingPackageType.TEN_SESSIONS: 49900,
}

PACKAGE_VALIDITY_DAYS = 180


class CoachingPackage(UUIDPrimaryKeyMixin, BaseModel):
    """
    Prepaid session credits owned by a candidate.

    Invariants (check constraints):
        remaining_sessions + used_sessions == total_sessions
        remaining_sessions >= 0
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="coaching_packages",
    )
    package_type = models.CharField(
        max_length=16,
        choices=CoachingPackageType.choices,
    )
    total_sessions = models.PositiveIntegerField()
    remaining_sessions = models.PositiveIntegerField()
    used_sessions = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=16,
        choices=CoachingPackageStatus.choices,
        default=CoachingPackageStatus.ACTIVE,
        db_index=True,
    )
    price_in_cents = models.PositiveIntegerField()
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Coaching Package"
        verbose_name_plural = "Coaching Packages"
        constraints = [
            models.CheckConstraint(
                check=models.Q(
                    total_sessions=models.F("remaining_sessions") + models.F("used_sessions")
                ),
                name="package_sessions_balance",
            ),
            models.CheckConstraint(
                check=models.Q(remaining_sessions__gte=0),
                name="package_remaining_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"CoachingPackage({self.id}, {self.package_type}, "
            f"{self.remaining_sessions}/{self.total_sessions})"
        )
