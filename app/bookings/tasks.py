"""
Celery tasks for session housekeeping.

Tasks:
- expire_unpaid_sessions: Cancel sessions whose checkout was abandoned
- mark_no_shows: Close scheduled sessions nobody started
- complete_overrun_sessions: Complete running sessions left open past their slot

All run from django-celery-beat (see the bookings 0002 and 0003 migrations) and
only use SessionLedger operations, so a session moved by a request in
the meantime is skipped rather than overwritten.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


BATCH_SIZE = 200


@shared_task(bind=True)
def expire_unpaid_sessions(self) -> dict:
    """
    Cancel pending_payment sessions older than PENDING_PAYMENT_TTL_MINUTES.

    Returns:
        Dict with counts of expired and skipped sessions
    """
    from bookings.models import ExpertSession
    from bookings.services import SessionLedger
    from bookings.state_machines import SessionStatus

    now = timezone.now()
    cutoff = now - timedelta(minutes=settings.PENDING_PAYMENT_TTL_MINUTES)

    session_ids = list(
        ExpertSession.objects.filter(
            status=SessionStatus.PENDING_PAYMENT,
            created_at__lte=cutoff,
        ).values_list("id", flat=True)[:BATCH_SIZE]
    )

    expired = 0
    skipped = 0
    for session_id in session_ids:
        try:
            SessionLedger.expire_payment(session_id, now=now)
            expired += 1
        except BaseApplicationError as e:
            skipped += 1
            logger.info(
                "Skipped expiring session",
                extra={"session_id": str(session_id), "error_code": e.error_code},
            )

    if session_ids:
        logger.info(
            "Expired unpaid sessions",
            extra={"expired": expired, "skipped": skipped, "task_id": self.request.id},
        )
    return {"status": "completed", "expired": expired, "skipped": skipped}


@shared_task(bind=True)
def mark_no_shows(self) -> dict:
    """
    Close scheduled sessions whose slot ended without anyone joining.

    A session qualifies once scheduled_at + duration + NO_SHOW_GRACE_MINUTES
    has passed. No money moves; reported no-shows with refunds go through
    CancellationService.report_no_show instead.
    """
    from bookings.models import ExpertSession
    from bookings.services import SessionLedger
    from bookings.state_machines import SessionStatus

    now = timezone.now()
    grace = timedelta(minutes=settings.NO_SHOW_GRACE_MINUTES)
    shortest = timedelta(minutes=settings.SESSION_MIN_DURATION_MINUTES)

    candidates = ExpertSession.objects.filter(
        status=SessionStatus.SCHEDULED,
        scheduled_at__lte=now - grace - shortest,
    )[:BATCH_SIZE]

    marked = 0
    skipped = 0
    for session in candidates:
        if session.ends_at + grace > now:
            continue
        try:
            SessionLedger.mark_no_show(session.id, now=now)
            marked += 1
        except BaseApplicationError as e:
            skipped += 1
            logger.info(
                "Skipped marking no-show",
                extra={"session_id": str(session.id), "error_code": e.error_code},
            )

    if marked or skipped:
        logger.info(
            "Marked no-show sessions",
            extra={"marked": marked, "skipped": skipped, "task_id": self.request.id},
        )
    return {"status": "completed", "marked": marked, "skipped": skipped}


@shared_task(bind=True)
def complete_overrun_sessions(self) -> dict:
    """
    Complete in_progress sessions the interviewer never closed.

    A session qualifies once scheduled_at + duration +
    SESSION_AUTO_COMPLETE_GRACE_MINUTES has passed.
    """
    from bookings.models import ExpertSession
    from bookings.services import SessionLedger
    from bookings.state_machines import SessionStatus

    now = timezone.now()
    grace = timedelta(minutes=settings.SESSION_AUTO_COMPLETE_GRACE_MINUTES)
    shortest = timedelta(minutes=settings.SESSION_MIN_DURATION_MINUTES)

    running = ExpertSession.objects.filter(
        status=SessionStatus.IN_PROGRESS,
        scheduled_at__lte=now - grace - shortest,
    )[:BATCH_SIZE]

    completed = 0
    skipped = 0
    for session in running:
        if session.ends_at + grace > now:
            continue
        try:
            SessionLedger.complete_session(session.id, now=now)
            completed += 1
        except BaseApplicationError as e:
            skipped += 1
            logger.info(
                "Skipped completing session",
                extra={"session_id": str(session.id), "error_code": e.error_code},
            )

    if completed or skipped:
        logger.info(
            "Completed overrun sessions",
            extra={"completed": completed, "skipped": skipped, "task_id": self.request.id},
        )
    return {"status": "completed", "completed": completed, "skipped": skipped}
