"""
BookingService: creating sessions and taking payment for them.

A session paid by card starts in pending_payment and is scheduled once
the charge succeeds. A session paid from a coaching package debits the
package and is scheduled immediately, in one transaction.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from bookings.exceptions import AuthorizationError
from bookings.models import ExpertSession
from bookings.policies import platform_fee_split
from bookings.services.coaching_ledger import CoachingLedger
from bookings.services.session_ledger import SessionLedger
from bookings.state_machines import PaymentStatus, SessionStatus, SessionType
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from payments.adapters import IdempotencyKeyGenerator, StripeAdapter

if TYPE_CHECKING:
    from datetime import datetime


class BookingService(BaseService):
    """
    Session booking and payment.

    Operations:
        book_session: Create a session, optionally paid from a package
        pay_session: Charge a card for a pending session
    """

    _stripe_adapter = None

    @classmethod
    def get_stripe_adapter(cls):
        if cls._stripe_adapter is None:
            return StripeAdapter
        return cls._stripe_adapter

    @classmethod
    def set_stripe_adapter(cls, adapter) -> None:
        cls._stripe_adapter = adapter

    @classmethod
    def book_session(
        cls,
        candidate_id,
        interviewer_id,
        scheduled_at: datetime,
        price_in_cents: int,
        duration_minutes: int = 60,
        session_type: str = SessionType.CODING,
        notes: str = "",
        coaching_package_id=None,
        now: datetime | None = None,
    ) -> ExpertSession:
        """
        Book a session with an interviewer.

        Raises:
            ValidationError: Bad duration, price, self-booking or past time
            NotFoundError: Interviewer does not exist
            ConflictError: Interviewer already booked near that time
        """
        now = now or timezone.now()
        logger = cls.get_logger()

        cls._validate_request(
            candidate_id, interviewer_id, scheduled_at, price_in_cents, duration_minutes, now
        )
        if session_type not in SessionType.values:
            raise ValidationError(
                f"Unknown session type {session_type}",
                error_code="INVALID_SESSION_TYPE",
            )

        User = get_user_model()
        if not User.objects.filter(pk=interviewer_id, is_active=True).exists():
            raise NotFoundError(
                f"Interviewer {interviewer_id} not found",
                error_code="INTERVIEWER_NOT_FOUND",
            )

        cls._check_slot_free(interviewer_id, scheduled_at)
        platform_fee, interviewer_payout = platform_fee_split(price_in_cents)

        with cls.atomic():
            if coaching_package_id:
                CoachingLedger.debit(coaching_package_id, user_id=candidate_id, now=now)

            session = ExpertSession.objects.create(
                candidate_id=candidate_id,
                interviewer_id=interviewer_id,
                scheduled_at=scheduled_at,
                duration_minutes=duration_minutes,
                session_type=session_type,
                notes=notes,
                price_in_cents=price_in_cents,
                platform_fee_in_cents=platform_fee,
                interviewer_payout_in_cents=interviewer_payout,
                coaching_package_id=coaching_package_id,
            )

            if coaching_package_id:
                session = SessionLedger.confirm_payment(session.id)

        logger.info(
            "Session booked",
            extra={
                "session_id": str(session.id),
                "candidate_id": str(candidate_id),
                "interviewer_id": str(interviewer_id),
                "status": session.status,
                "coaching_package_id": str(coaching_package_id) if coaching_package_id else None,
            },
        )
        return session

    @classmethod
    def _validate_request(
        cls, candidate_id, interviewer_id, scheduled_at, price_in_cents, duration_minutes, now
    ) -> None:
        if str(candidate_id) == str(interviewer_id):
            raise ValidationError(
                "Cannot book a session with yourself",
                error_code="SELF_BOOKING",
            )
        if not (
            settings.SESSION_MIN_DURATION_MINUTES
            <= duration_minutes
            <= settings.SESSION_MAX_DURATION_MINUTES
        ):
            raise ValidationError(
                "Session duration is out of range",
                error_code="INVALID_DURATION",
                details={
                    "duration_minutes": duration_minutes,
                    "min": settings.SESSION_MIN_DURATION_MINUTES,
                    "max": settings.SESSION_MAX_DURATION_MINUTES,
                },
            )
        if price_in_cents <= 0:
            raise ValidationError("Price must be positive", error_code="INVALID_PRICE")
        if scheduled_at <= now:
            raise ValidationError(
                "Sessions must be scheduled in the future",
                error_code="SCHEDULED_IN_PAST",
            )

    @classmethod
    def _check_slot_free(cls, interviewer_id, scheduled_at: datetime) -> None:
        buffer = timedelta(minutes=settings.SESSION_BOOKING_BUFFER_MINUTES)
        clash = ExpertSession.objects.filter(
            interviewer_id=interviewer_id,
            status__in=[
                SessionStatus.PENDING_PAYMENT,
                SessionStatus.SCHEDULED,
                SessionStatus.IN_PROGRESS,
            ],
            scheduled_at__gt=scheduled_at - buffer,
            scheduled_at__lt=scheduled_at + buffer,
        ).exists()
        if clash:
            raise ConflictError(
                "Interviewer is not available at this time",
                error_code="SLOT_CONFLICT",
                details={"scheduled_at": scheduled_at.isoformat()},
            )

    @classmethod
    def pay_session(
        cls,
        session_id,
        payment_method_id: str,
        payer_id=None,
    ) -> ExpertSession:
        """
        Charge the session price and schedule the session.

        The idempotency key is derived from the session id, so a retried
        call after a timeout cannot charge twice.

        Raises:
            AuthorizationError: payer_id given and not the candidate
            ValidationError: Session not awaiting payment, or charge incomplete
            GatewayError: Card declined or Stripe unavailable
        """
        session = SessionLedger.get_session(session_id)
        if payer_id is not None and str(session.candidate_id) != str(payer_id):
            raise AuthorizationError(
                "Only the candidate can pay for a session",
                details={"session_id": str(session.id)},
            )
        if session.status != SessionStatus.PENDING_PAYMENT:
            if session.payment_status == PaymentStatus.PAID:
                return session
            raise ValidationError(
                f"Session is {session.status}, not awaiting payment",
                error_code="NOT_AWAITING_PAYMENT",
                details={"session_id": str(session.id)},
            )

        adapter = cls.get_stripe_adapter()
        intent = adapter.charge(
            amount_cents=session.price_in_cents,
            payment_method_id=payment_method_id,
            idempotency_key=IdempotencyKeyGenerator.generate("charge", session.id),
            metadata={
                "session_id": str(session.id),
                "candidate_id": str(session.candidate_id),
            },
        )

        if intent.status != "succeeded":
            cls.get_logger().warning(
                "Charge not completed",
                extra={"session_id": str(session.id), "intent_status": intent.status},
            )
            raise ValidationError(
                "Payment requires further action",
                error_code="PAYMENT_INCOMPLETE",
                details={"payment_intent_id": intent.id, "status": intent.status},
            )

        return SessionLedger.confirm_payment(session.id, intent.id)
