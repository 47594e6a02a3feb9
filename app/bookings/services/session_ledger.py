"""
SessionLedger: the only writer of ExpertSession status.

Each operation re-reads the session, runs the django-fsm transition and
saves with update_fields. ConcurrentTransitionMixin filters the UPDATE on
the status that was read, so a session moved by someone else in between
fails with StaleStateError instead of being overwritten.

Repeating a transition whose target the session is already in returns
the session unchanged. That makes retries from the orchestrator and the
reconciler safe.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Callable

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django_fsm import ConcurrentTransition, TransitionNotAllowed

from bookings.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    StaleStateError,
    TerminalStateError,
)
from bookings.models import ExpertSession
from bookings.state_machines import PaymentStatus, SessionStatus
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID


class SessionLedger(BaseService):
    """
    Status transitions for expert sessions.

    Operations:
        get_session: Fresh read by id
        confirm_payment: pending_payment -> scheduled
        expire_payment: pending_payment -> cancelled
        start_session: scheduled -> in_progress
        complete_session: in_progress -> completed
        mark_no_show: scheduled -> no_show (no money moved)
        apply_cancellation: scheduled/in_progress -> cancelled or no_show,
            together with the refund fields
    """

    @classmethod
    def get_session(cls, session_id: UUID | str) -> ExpertSession:
        try:
            return ExpertSession.objects.get(pk=session_id)
        except (ExpertSession.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                f"Session {session_id} not found",
                error_code="SESSION_NOT_FOUND",
                details={"session_id": str(session_id)},
            )

    # =========================================================================
    # Transition core
    # =========================================================================

    @classmethod
    def _transition(
        cls,
        session: ExpertSession,
        target: str,
        perform: Callable[[ExpertSession], list[str]],
    ) -> ExpertSession:
        """
        Run one transition and persist it with a compare-and-set.

        Args:
            session: Freshly read session
            target: Status the transition leads to
            perform: Calls the transition method and returns the extra
                fields it changed
        """
        logger = cls.get_logger()

        if session.status == target:
            logger.info(
                "Session already in target status",
                extra={"session_id": str(session.id), "status": session.status},
            )
            return session

        if session.is_terminal:
            raise TerminalStateError(
                f"Session is already {session.status}",
                current_status=session.status,
                details={"session_id": str(session.id)},
            )

        previous = session.status
        try:
            changed_fields = perform(session)
        except TransitionNotAllowed:
            raise InvalidTransitionError(
                f"Cannot move session from {previous} to {target}",
                current_status=previous,
                details={"session_id": str(session.id), "target_status": target},
            )

        try:
            with transaction.atomic():
                session.save(update_fields=["status", "updated_at", *changed_fields])
        except ConcurrentTransition:
            logger.warning(
                "Session changed concurrently",
                extra={
                    "session_id": str(session.id),
                    "expected_status": previous,
                    "target_status": target,
                },
            )
            raise StaleStateError(
                f"Session {session.id} is no longer {previous}",
                expected_status=previous,
                details={"session_id": str(session.id)},
            )

        logger.info(
            "Session transitioned",
            extra={
                "session_id": str(session.id),
                "from_status": previous,
                "to_status": target,
            },
        )
        return session

    # =========================================================================
    # Operations
    # =========================================================================

    @classmethod
    def confirm_payment(
        cls,
        session_id: UUID | str,
        payment_intent_id: str | None = None,
    ) -> ExpertSession:
        session = cls.get_session(session_id)

        if (
            payment_intent_id
            and session.payment_intent_id
            and session.payment_intent_id != payment_intent_id
        ):
            raise ValidationError(
                "Session is already linked to another payment",
                error_code="PAYMENT_INTENT_MISMATCH",
                details={"session_id": str(session.id)},
            )

        def perform(s: ExpertSession) -> list[str]:
            s.confirm_payment(payment_intent_id)
            return ["payment_status", "payment_intent_id"]

        return cls._transition(session, SessionStatus.SCHEDULED, perform)

    @classmethod
    def expire_payment(
        cls,
        session_id: UUID | str,
        now: datetime | None = None,
        reason: str = "Payment window expired",
    ) -> ExpertSession:
        now = now or timezone.now()
        session = cls.get_session(session_id)

        def perform(s: ExpertSession) -> list[str]:
            s.expire_payment(reason=reason, at=now)
            return ["cancelled_at", "cancellation_reason"]

        return cls._transition(session, SessionStatus.CANCELLED, perform)

    @classmethod
    def start_session(
        cls,
        session_id: UUID | str,
        participant_id,
        now: datetime | None = None,
    ) -> ExpertSession:
        """Open the session once the join window has started."""
        now = now or timezone.now()
        session = cls.get_session(session_id)

        if session.participant_role(participant_id) is None:
            raise AuthorizationError(
                "Only session participants can join",
                details={"session_id": str(session.id)},
            )

        join_window = timedelta(minutes=settings.SESSION_JOIN_WINDOW_MINUTES)
        if session.status == SessionStatus.SCHEDULED and now < session.scheduled_at - join_window:
            raise ValidationError(
                "Session cannot be joined yet",
                error_code="JOIN_TOO_EARLY",
                details={
                    "session_id": str(session.id),
                    "opens_at": (session.scheduled_at - join_window).isoformat(),
                },
            )

        def perform(s: ExpertSession) -> list[str]:
            s.start(at=now)
            return ["started_at"]

        return cls._transition(session, SessionStatus.IN_PROGRESS, perform)

    @classmethod
    def complete_session(
        cls,
        session_id: UUID | str,
        now: datetime | None = None,
        interviewer_id=None,
    ) -> ExpertSession:
        """
        Close a running session as completed.

        When interviewer_id is given only the session's interviewer may
        close it; housekeeping calls without one.
        """
        now = now or timezone.now()
        session = cls.get_session(session_id)

        if interviewer_id is not None and session.participant_role(interviewer_id) != "interviewer":
            raise AuthorizationError(
                "Only the interviewer can complete the session",
                details={"session_id": str(session.id)},
            )

        def perform(s: ExpertSession) -> list[str]:
            s.complete(at=now)
            return ["completed_at"]

        return cls._transition(session, SessionStatus.COMPLETED, perform)

    @classmethod
    def mark_no_show(
        cls,
        session_id: UUID | str,
        now: datetime | None = None,
        party: str = "",
        reason: str = "Session was never started",
    ) -> ExpertSession:
        """
        Close a scheduled session nobody started, without moving money.

        Only allowed once the no-show grace period after the start time
        has passed.
        """
        now = now or timezone.now()
        session = cls.get_session(session_id)

        grace = timedelta(minutes=settings.NO_SHOW_GRACE_MINUTES)
        if session.status == SessionStatus.SCHEDULED and now < session.scheduled_at + grace:
            raise ValidationError(
                "Too early to mark the session as a no-show",
                error_code="NO_SHOW_TOO_EARLY",
                details={"session_id": str(session.id)},
            )

        def perform(s: ExpertSession) -> list[str]:
            s.mark_no_show(reason=reason, at=now, party=party)
            return ["cancelled_at", "cancellation_reason", "no_show_party"]

        return cls._transition(session, SessionStatus.NO_SHOW, perform)

    @classmethod
    def apply_cancellation(
        cls,
        session_id: UUID | str,
        target_status: str,
        reason: str,
        at: datetime,
        *,
        refund_id: str | None = None,
        refund_amount_cents: int = 0,
        refund_percentage: int = 0,
        refund_reason: str = "",
        package_credit_returned: bool = False,
        no_show_party: str = "",
        expected_status: str | None = None,
    ) -> ExpertSession:
        """
        Close a session as cancelled or no-show, recording the refund outcome.

        payment_status is derived from the refund amount: the full price
        gives refunded, anything in between gives partially_refunded, and
        no refund leaves it alone.

        Raises:
            TerminalStateError: Session already in another terminal status
            InvalidTransitionError: Status does not allow the close
            StaleStateError: Session changed between read and write, or is
                no longer in expected_status when one is given
        """
        session = cls.get_session(session_id)

        if expected_status is not None and session.status != expected_status:
            raise StaleStateError(
                f"Session {session.id} is no longer {expected_status}",
                expected_status=expected_status,
                details={"session_id": str(session.id), "current_status": session.status},
            )

        def perform(s: ExpertSession) -> list[str]:
            if target_status == SessionStatus.NO_SHOW:
                s.mark_no_show(reason=reason, at=at, party=no_show_party)
            else:
                s.cancel(reason=reason, at=at)

            s.refund_percentage = refund_percentage
            s.refund_reason = refund_reason
            s.package_credit_returned = package_credit_returned
            if refund_amount_cents > 0:
                s.refund_id = refund_id
                s.refund_amount_in_cents = refund_amount_cents
                s.payment_status = (
                    PaymentStatus.REFUNDED
                    if refund_amount_cents >= s.price_in_cents
                    else PaymentStatus.PARTIALLY_REFUNDED
                )

            return [
                "cancelled_at",
                "cancellation_reason",
                "no_show_party",
                "refund_id",
                "refund_amount_in_cents",
                "refund_percentage",
                "refund_reason",
                "package_credit_returned",
                "payment_status",
            ]

        return cls._transition(session, target_status, perform)
