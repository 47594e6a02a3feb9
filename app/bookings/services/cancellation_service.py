"""
CancellationService: cancel a session or report a no-show, with refunds.

Decision flow for a cancellation:

    not a participant            -> AuthorizationError
    already cancelled            -> the stored outcome, nothing repeated
    other terminal status        -> TerminalStateError
    awaiting payment             -> InvalidTransitionError
    unpaid                       -> close, no refund
    paid from a package          -> full tier: credit the package and close
                                    otherwise: close, no refund
    paid by card, refund > 0     -> RefundSaga
    paid by card, refund == 0    -> close, no refund

A lost race (StaleStateError) is resolved by re-reading: if the other
writer cancelled the session too, the caller gets the stored outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from bookings.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    StaleStateError,
    TerminalStateError,
)
from bookings.policies import RefundPolicy, RefundTier, no_show_policy, refund_policy
from bookings.services.coaching_ledger import CoachingLedger
from bookings.services.refund_saga import RefundSaga, SessionClosure
from bookings.services.session_ledger import SessionLedger
from bookings.state_machines import (
    CANCELLABLE_SESSION_STATUSES,
    NoShowParty,
    PaymentStatus,
    SessionStatus,
)
from core.exceptions import ValidationError
from core.services import BaseService
from payments.exceptions import ReconciliationRequired

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from bookings.models import ExpertSession


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundOutcome:
    """
    What happened to the money.

    Attributes:
        percentage: Policy percentage (0, 50 or 100 with default settings)
        amount_cents: Amount refunded to the card
        reason: Policy explanation
        refund_id: Stripe Refund ID when a card refund was made
        package_session_returned: A coaching credit went back to the package
        reconciliation_pending: Refund sent or confirmed, session not yet closed
    """

    percentage: int
    amount_cents: int
    reason: str
    refund_id: str | None = None
    package_session_returned: bool = False
    reconciliation_pending: bool = False


@dataclass
class CancellationResult:
    session: ExpertSession
    refund: RefundOutcome
    already_cancelled: bool = False

    @property
    def status(self) -> str:
        return self.session.status


@dataclass
class CancellationPreview:
    """What a cancellation would do right now, without doing it."""

    can_cancel: bool
    status: str
    percentage: int
    amount_cents: int
    reason: str
    is_coaching_package: bool
    package_session_returned: bool


def can_cancel(session: ExpertSession, requester_id) -> bool:
    """Only the candidate and the interviewer may cancel."""
    return session.participant_role(requester_id) is not None


# =============================================================================
# Service
# =============================================================================


class CancellationService(BaseService):
    """
    Orchestrates cancellations and no-show reports.

    Operations:
        cancel: Cancel a session and refund per policy
        preview: Show the refund a cancellation would give
        report_no_show: Close a session a participant did not attend
    """

    @classmethod
    def _require_participant(cls, session: ExpertSession, requester_id) -> str:
        if not can_cancel(session, requester_id):
            cls.get_logger().warning(
                "Non-participant tried to act on session",
                extra={"session_id": str(session.id), "requester_id": str(requester_id)},
            )
            raise AuthorizationError(
                "Only session participants can do this",
                details={"session_id": str(session.id)},
            )
        return session.participant_role(requester_id)

    @classmethod
    def _stored_outcome(cls, session: ExpertSession) -> CancellationResult:
        return CancellationResult(
            session=session,
            refund=RefundOutcome(
                percentage=session.refund_percentage,
                amount_cents=session.refund_amount_in_cents,
                reason=session.refund_reason,
                refund_id=session.refund_id,
                package_session_returned=session.package_credit_returned,
            ),
            already_cancelled=True,
        )

    # =========================================================================
    # Cancel
    # =========================================================================

    @classmethod
    def cancel(
        cls,
        session_id: UUID | str,
        requester_id,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CancellationResult:
        """
        Cancel a session on behalf of a participant.

        Raises:
            NotFoundError: Session does not exist
            AuthorizationError: Requester is not a participant
            TerminalStateError: Session completed or marked no-show
            InvalidTransitionError: Session still awaiting payment
            StaleStateError: Session moved to a non-cancelled status concurrently
            GatewayError: Stripe rejected the refund; nothing changed
        """
        now = now or timezone.now()
        logger = cls.get_logger()

        session = SessionLedger.get_session(session_id)
        role = cls._require_participant(session, requester_id)

        if session.status == SessionStatus.CANCELLED:
            logger.info(
                "Session already cancelled, returning stored outcome",
                extra={"session_id": str(session.id)},
            )
            return cls._stored_outcome(session)

        if session.is_terminal:
            raise TerminalStateError(
                f"Session is already {session.status}",
                current_status=session.status,
                details={"session_id": str(session.id)},
            )

        if session.status not in CANCELLABLE_SESSION_STATUSES:
            raise InvalidTransitionError(
                f"Cannot cancel a session that is {session.status}",
                current_status=session.status,
                details={"session_id": str(session.id)},
            )

        policy = refund_policy(session.scheduled_at, now)
        closure = SessionClosure(
            target_status=SessionStatus.CANCELLED,
            reason=reason or f"Cancelled by {role}: {policy.reason}",
            at=now,
            refund_percentage=policy.percentage,
            refund_reason=policy.reason,
        )

        logger.info(
            "Cancelling session",
            extra={
                "session_id": str(session.id),
                "requester_role": role,
                "refund_tier": policy.tier.value,
                "payment_status": session.payment_status,
            },
        )

        try:
            return cls._settle(session, policy, closure)
        except StaleStateError:
            current = SessionLedger.get_session(session_id)
            if current.status == SessionStatus.CANCELLED:
                logger.info(
                    "Lost cancellation race to an identical cancel",
                    extra={"session_id": str(current.id)},
                )
                return cls._stored_outcome(current)
            raise

    @classmethod
    def _settle(
        cls,
        session: ExpertSession,
        policy: RefundPolicy,
        closure: SessionClosure,
    ) -> CancellationResult:
        """Close the session and move whatever money the policy says."""

        def close(**refund_fields) -> ExpertSession:
            return SessionLedger.apply_cancellation(
                session.id,
                closure.target_status,
                closure.reason,
                closure.at,
                refund_percentage=closure.refund_percentage,
                refund_reason=closure.refund_reason,
                no_show_party=closure.no_show_party,
                expected_status=session.status,
                **refund_fields,
            )

        if session.payment_status == PaymentStatus.UNPAID:
            closed = close()
            return CancellationResult(
                session=closed,
                refund=RefundOutcome(policy.percentage, 0, policy.reason),
            )

        if session.coaching_package_id:
            if policy.tier == RefundTier.FULL:
                with cls.atomic():
                    closed = close(package_credit_returned=True)
                    CoachingLedger.credit(session.coaching_package_id, now=closure.at)
                return CancellationResult(
                    session=closed,
                    refund=RefundOutcome(
                        policy.percentage,
                        0,
                        policy.reason,
                        package_session_returned=True,
                    ),
                )
            closed = close()
            return CancellationResult(
                session=closed,
                refund=RefundOutcome(policy.percentage, 0, policy.reason),
            )

        amount = policy.refund_amount(session.price_in_cents)
        if amount <= 0:
            closed = close()
            return CancellationResult(
                session=closed,
                refund=RefundOutcome(policy.percentage, 0, policy.reason),
            )

        try:
            saga = RefundSaga.execute(session, amount, closure)
        except ReconciliationRequired:
            return CancellationResult(
                session=SessionLedger.get_session(session.id),
                refund=RefundOutcome(
                    policy.percentage,
                    amount,
                    policy.reason,
                    package_session_returned=False,
                    reconciliation_pending=True,
                ),
            )

        return CancellationResult(
            session=saga.session,
            refund=RefundOutcome(
                policy.percentage,
                amount,
                policy.reason,
                refund_id=saga.refund_id,
            ),
        )

    # =========================================================================
    # Preview
    # =========================================================================

    @classmethod
    def preview(
        cls,
        session_id: UUID | str,
        requester_id,
        now: datetime | None = None,
    ) -> CancellationPreview:
        """Refund a cancellation would give now. Changes nothing."""
        now = now or timezone.now()
        session = SessionLedger.get_session(session_id)
        cls._require_participant(session, requester_id)

        policy = refund_policy(session.scheduled_at, now)
        is_package = session.coaching_package_id is not None
        paid = session.payment_status == PaymentStatus.PAID

        amount = 0
        if paid and not is_package:
            amount = policy.refund_amount(session.price_in_cents)

        return CancellationPreview(
            can_cancel=session.status in CANCELLABLE_SESSION_STATUSES,
            status=session.status,
            percentage=policy.percentage,
            amount_cents=amount,
            reason=policy.reason,
            is_coaching_package=is_package,
            package_session_returned=is_package and paid and policy.tier == RefundTier.FULL,
        )

    # =========================================================================
    # No-show
    # =========================================================================

    @classmethod
    def report_no_show(
        cls,
        session_id: UUID | str,
        reporter_id,
        party: str,
        now: datetime | None = None,
    ) -> CancellationResult:
        """
        Close a session one party did not attend.

        An absent interviewer gives the candidate a full refund (or the
        package credit back); an absent candidate gets nothing back.

        Raises:
            ValidationError: Unknown party, or grace period not yet over
            AuthorizationError: Reporter is not a participant
            TerminalStateError / InvalidTransitionError: Session not scheduled
        """
        now = now or timezone.now()
        if party not in NoShowParty.values:
            raise ValidationError(
                f"Unknown no-show party {party}",
                error_code="INVALID_NO_SHOW_PARTY",
            )

        session = SessionLedger.get_session(session_id)
        cls._require_participant(session, reporter_id)

        if session.status == SessionStatus.NO_SHOW:
            return cls._stored_outcome(session)
        if session.is_terminal:
            raise TerminalStateError(
                f"Session is already {session.status}",
                current_status=session.status,
                details={"session_id": str(session.id)},
            )
        if session.status != SessionStatus.SCHEDULED:
            raise InvalidTransitionError(
                f"Cannot report a no-show for a session that is {session.status}",
                current_status=session.status,
                details={"session_id": str(session.id)},
            )

        grace = timedelta(minutes=settings.NO_SHOW_GRACE_MINUTES)
        if now < session.scheduled_at + grace:
            raise ValidationError(
                "Too early to report a no-show",
                error_code="NO_SHOW_TOO_EARLY",
                details={"reportable_at": (session.scheduled_at + grace).isoformat()},
            )

        policy = no_show_policy(party)
        closure = SessionClosure(
            target_status=SessionStatus.NO_SHOW,
            reason=f"No-show by {party}",
            at=now,
            refund_percentage=policy.percentage,
            refund_reason=policy.reason,
            no_show_party=party,
        )

        cls.get_logger().info(
            "No-show reported",
            extra={"session_id": str(session.id), "party": party},
        )

        try:
            return cls._settle(session, policy, closure)
        except StaleStateError:
            current = SessionLedger.get_session(session_id)
            if current.status == SessionStatus.NO_SHOW:
                return cls._stored_outcome(current)
            raise
