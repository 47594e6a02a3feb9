"""
Views for the session API.

Endpoints:
    POST /api/v1/sessions/ - Book a session
    POST /api/v1/sessions/{id}/pay/ - Pay for a pending session
    GET  /api/v1/sessions/{id}/cancel/ - Preview the refund of a cancellation
    POST /api/v1/sessions/{id}/cancel/ - Cancel a session
    POST /api/v1/sessions/{id}/no-show/ - Report a no-show
    POST /api/v1/sessions/{id}/start/ - Join a session and start it
    POST /api/v1/sessions/{id}/complete/ - Close a running session (interviewer)

Errors are rendered from the domain exception hierarchy: each exception
declares its HTTP status and to_dict() provides the body.
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.serializers import (
    BookSessionSerializer,
    CancellationPreviewSerializer,
    CancellationResultSerializer,
    CancelSessionSerializer,
    ExpertSessionSerializer,
    NoShowSerializer,
    PaySessionSerializer,
)
from bookings.services import BookingService, CancellationService, SessionLedger
from core.exceptions import BaseApplicationError
from core.views import error_response

logger = logging.getLogger(__name__)


def _cancellation_response(result) -> Response:
    """200 when settled, 202 when the refund awaits reconciliation."""
    code = (
        status.HTTP_202_ACCEPTED
        if result.refund.reconciliation_pending
        else status.HTTP_200_OK
    )
    return Response(CancellationResultSerializer(result).data, status=code)


class SessionBookView(APIView):
    """
    Book a session as the authenticated candidate.

    POST /api/v1/sessions/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="book_session",
        summary="Book a session",
        description=(
            "Creates a session awaiting payment, or a scheduled session when a "
            "coaching package is used."
        ),
        request=BookSessionSerializer,
        responses={
            201: ExpertSessionSerializer,
            400: OpenApiResponse(description="Invalid request or package has no credit"),
            404: OpenApiResponse(description="Interviewer or package not found"),
            409: OpenApiResponse(description="Interviewer already booked at that time"),
        },
        tags=["Sessions"],
    )
    def post(self, request):
        serializer = BookSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            session = BookingService.book_session(
                candidate_id=request.user.id,
                **serializer.validated_data,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ExpertSessionSerializer(session).data, status=status.HTTP_201_CREATED)


class SessionPayView(APIView):
    """
    Charge the card for a pending session.

    POST /api/v1/sessions/{id}/pay/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="pay_session",
        summary="Pay for a session",
        request=PaySessionSerializer,
        responses={
            200: ExpertSessionSerializer,
            400: OpenApiResponse(description="Card declined or payment incomplete"),
            403: OpenApiResponse(description="Not the session's candidate"),
            502: OpenApiResponse(description="Payment gateway error"),
        },
        tags=["Sessions"],
    )
    def post(self, request, session_id):
        serializer = PaySessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            session = BookingService.pay_session(
                session_id,
                payer_id=request.user.id,
                **serializer.validated_data,
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ExpertSessionSerializer(session).data)


class SessionCancelView(APIView):
    """
    Cancel a session, or preview what a cancellation would refund.

    GET  /api/v1/sessions/{id}/cancel/
    POST /api/v1/sessions/{id}/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="preview_session_cancellation",
        summary="Preview cancellation",
        description="Refund a cancellation would give right now. Changes nothing.",
        responses={
            200: CancellationPreviewSerializer,
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Session not found"),
        },
        tags=["Sessions"],
    )
    def get(self, request, session_id):
        try:
            preview = CancellationService.preview(session_id, request.user.id)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(CancellationPreviewSerializer(preview).data)

    @extend_schema(
        operation_id="cancel_session",
        summary="Cancel a session",
        description=(
            "Cancels the session and refunds according to the notice given. "
            "Cancelling an already cancelled session returns the stored outcome."
        ),
        request=CancelSessionSerializer,
        responses={
            200: CancellationResultSerializer,
            202: OpenApiResponse(
                response=CancellationResultSerializer,
                description="Refund sent; the session is closed by reconciliation",
            ),
            400: OpenApiResponse(description="Session already completed or no-show"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Session not found"),
            409: OpenApiResponse(description="Invalid transition or concurrent change"),
            502: OpenApiResponse(description="Payment gateway rejected the refund"),
        },
        tags=["Sessions"],
    )
    def post(self, request, session_id):
        serializer = CancelSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = CancellationService.cancel(
                session_id,
                request.user.id,
                reason=serializer.validated_data["reason"] or None,
            )
        except BaseApplicationError as e:
            logger.info(
                "Cancellation refused",
                extra={"session_id": str(session_id), "error_code": e.error_code},
            )
            return error_response(e)

        return _cancellation_response(result)


class SessionNoShowView(APIView):
    """
    Report that a participant did not attend.

    POST /api/v1/sessions/{id}/no-show/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="report_session_no_show",
        summary="Report a no-show",
        request=NoShowSerializer,
        responses={
            200: CancellationResultSerializer,
            202: OpenApiResponse(
                response=CancellationResultSerializer,
                description="Refund sent; the session is closed by reconciliation",
            ),
            400: OpenApiResponse(description="Too early, or session not scheduled"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Session not found"),
        },
        tags=["Sessions"],
    )
    def post(self, request, session_id):
        serializer = NoShowSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = CancellationService.report_no_show(
                session_id,
                request.user.id,
                party=serializer.validated_data["party"],
            )
        except BaseApplicationError as e:
            return error_response(e)

        return _cancellation_response(result)


class SessionStartView(APIView):
    """
    Start a session once its join window is open.

    POST /api/v1/sessions/{id}/start/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="start_session",
        summary="Start a session",
        description=(
            "Moves a scheduled session to in_progress. Either participant may "
            "start it from SESSION_JOIN_WINDOW_MINUTES before the start time. "
            "Starting a running session returns it unchanged."
        ),
        request=None,
        responses={
            200: ExpertSessionSerializer,
            400: OpenApiResponse(description="Join window not open, or session closed"),
            403: OpenApiResponse(description="Not a participant"),
            404: OpenApiResponse(description="Session not found"),
            409: OpenApiResponse(description="Invalid transition or concurrent change"),
        },
        tags=["Sessions"],
    )
    def post(self, request, session_id):
        try:
            session = SessionLedger.start_session(session_id, request.user.id)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ExpertSessionSerializer(session).data)


class SessionCompleteView(APIView):
    """
    Close a running session as completed.

    POST /api/v1/sessions/{id}/complete/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="complete_session",
        summary="Complete a session",
        description="Only the interviewer can complete a session, and only once it has started.",
        request=None,
        responses={
            200: ExpertSessionSerializer,
            400: OpenApiResponse(description="Session already closed"),
            403: OpenApiResponse(description="Not the session's interviewer"),
            404: OpenApiResponse(description="Session not found"),
            409: OpenApiResponse(description="Session not started, or concurrent change"),
        },
        tags=["Sessions"],
    )
    def post(self, request, session_id):
        try:
            session = SessionLedger.complete_session(session_id, interviewer_id=request.user.id)
        except BaseApplicationError as e:
            return error_response(e)

        logger.info(
            "Session completed by interviewer",
            extra={"session_id": str(session.id), "interviewer_id": str(request.user.id)},
        )
        return Response(ExpertSessionSerializer(session).data)
