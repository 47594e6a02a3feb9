"""
CoachingLedger: debit and credit of prepaid coaching sessions.

Both operations are a single conditional UPDATE. The WHERE clause carries
the precondition (active, remaining > 0 for a debit; used > 0 for a
credit) so two concurrent bookings can never take the last credit twice.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.db.models import Case, F, Q, Value, When
from django.utils import timezone

from bookings.models import (
    PACKAGE_PRICES_CENTS,
    PACKAGE_SESSION_COUNTS,
    PACKAGE_VALIDITY_DAYS,
    CoachingPackage,
)
from bookings.state_machines import CoachingPackageStatus, CoachingPackageType
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


class CoachingLedger(BaseService):
    """
    Session credit ledger for coaching packages.

    Operations:
        create_package: Issue a new package after purchase
        debit: Use one session (booking)
        credit: Return one session (full-refund cancellation)
    """

    @classmethod
    def get_package(cls, package_id: UUID | str) -> CoachingPackage:
        try:
            return CoachingPackage.objects.get(pk=package_id)
        except (CoachingPackage.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                f"Coaching package {package_id} not found",
                error_code="PACKAGE_NOT_FOUND",
                details={"package_id": str(package_id)},
            )

    @classmethod
    def create_package(
        cls,
        user_id,
        package_type: str,
        now: datetime | None = None,
    ) -> CoachingPackage:
        if package_type not in CoachingPackageType.values:
            raise ValidationError(
                f"Unknown package type {package_type}",
                error_code="INVALID_PACKAGE_TYPE",
                details={"package_type": package_type},
            )
        now = now or timezone.now()
        sessions = PACKAGE_SESSION_COUNTS[package_type]

        package = CoachingPackage.objects.create(
            user_id=user_id,
            package_type=package_type,
            total_sessions=sessions,
            remaining_sessions=sessions,
            used_sessions=0,
            price_in_cents=PACKAGE_PRICES_CENTS[package_type],
            expires_at=now + timedelta(days=PACKAGE_VALIDITY_DAYS),
        )
        cls.get_logger().info(
            "Coaching package created",
            extra={
                "package_id": str(package.id),
                "user_id": str(user_id),
                "package_type": package_type,
            },
        )
        return package

    @classmethod
    def debit(
        cls,
        package_id: UUID | str,
        user_id,
        now: datetime | None = None,
    ) -> CoachingPackage:
        """
        Use one session from the package.

        The last remaining session moves the package to exhausted in the
        same statement.

        Raises:
            NotFoundError: Package does not exist or belongs to someone else
            ValidationError: Package inactive, expired or empty
        """
        now = now or timezone.now()
        updated = (
            CoachingPackage.objects.filter(
                pk=package_id,
                user_id=user_id,
                status=CoachingPackageStatus.ACTIVE,
                remaining_sessions__gt=0,
            )
            .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
            .update(
                remaining_sessions=F("remaining_sessions") - 1,
                used_sessions=F("used_sessions") + 1,
                status=Case(
                    When(remaining_sessions=1, then=Value(CoachingPackageStatus.EXHAUSTED)),
                    default=F("status"),
                ),
                updated_at=now,
            )
        )

        if updated == 0:
            cls._raise_debit_refusal(package_id, user_id, now)

        package = cls.get_package(package_id)
        cls.get_logger().info(
            "Coaching session debited",
            extra={
                "package_id": str(package_id),
                "remaining_sessions": package.remaining_sessions,
                "status": package.status,
            },
        )
        return package

    @classmethod
    def _raise_debit_refusal(cls, package_id, user_id, now) -> None:
        package = CoachingPackage.objects.filter(pk=package_id, user_id=user_id).first()
        if package is None:
            raise NotFoundError(
                f"Coaching package {package_id} not found",
                error_code="PACKAGE_NOT_FOUND",
                details={"package_id": str(package_id)},
            )
        details = {"package_id": str(package_id), "status": package.status}
        if package.expires_at is not None and package.expires_at <= now:
            raise ValidationError(
                "Coaching package has expired",
                error_code="PACKAGE_EXPIRED",
                details=details,
            )
        if package.status != CoachingPackageStatus.ACTIVE:
            raise ValidationError(
                f"Coaching package is {package.status}",
                error_code="PACKAGE_NOT_ACTIVE",
                details=details,
            )
        raise ValidationError(
            "No sessions remaining in coaching package",
            error_code="PACKAGE_EXHAUSTED",
            details=details,
        )

    @classmethod
    def credit(cls, package_id: UUID | str, now: datetime | None = None) -> CoachingPackage:
        """
        Return one session to the package.

        An exhausted package becomes active again; a cancelled one stays
        cancelled.

        Raises:
            ValidationError: Nothing was ever used from the package
        """
        now = now or timezone.now()
        updated = CoachingPackage.objects.filter(pk=package_id, used_sessions__gt=0).update(
            remaining_sessions=F("remaining_sessions") + 1,
            used_sessions=F("used_sessions") - 1,
            status=Case(
                When(
                    status=CoachingPackageStatus.EXHAUSTED,
                    then=Value(CoachingPackageStatus.ACTIVE),
                ),
                default=F("status"),
            ),
            updated_at=now,
        )

        if updated == 0:
            package = cls.get_package(package_id)
            raise ValidationError(
                "Coaching package has no used sessions to return",
                error_code="PACKAGE_NOTHING_TO_CREDIT",
                details={"package_id": str(package.id)},
            )

        package = cls.get_package(package_id)
        cls.get_logger().info(
            "Coaching session credited",
            extra={
                "package_id": str(package_id),
                "remaining_sessions": package.remaining_sessions,
                "status": package.status,
            },
        )
        return package
