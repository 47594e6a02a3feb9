"""
Views for the payout API.

Endpoints:
    GET  /api/v1/payments/payouts/ - Earnings and payout history
    POST /api/v1/payments/payouts/ - Pay out all eligible earnings

Security:
    - Authenticated interviewers only see and request their own payouts
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import BaseApplicationError
from core.views import error_response
from payments.exceptions import NoEligibleFundsError
from payments.serializers import PayoutCreatedSerializer, PayoutSummarySerializer
from payments.services import PayoutService
from payments.state_machines import PayoutStatus

logger = logging.getLogger(__name__)

PAYOUT_RESPONSE_STATUS = {
    PayoutStatus.COMPLETED: status.HTTP_201_CREATED,
    PayoutStatus.PENDING: status.HTTP_202_ACCEPTED,
    PayoutStatus.FAILED: status.HTTP_502_BAD_GATEWAY,
}


class PayoutView(APIView):
    """
    Interviewer payouts.

    GET  /api/v1/payments/payouts/
    POST /api/v1/payments/payouts/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_payout_summary",
        summary="Get payout summary",
        description="Eligible earnings, totals and recent payouts for the current user.",
        responses={200: PayoutSummarySerializer},
        tags=["Payouts"],
    )
    def get(self, request):
        summary = PayoutService.get_summary(request.user.id)
        return Response(PayoutSummarySerializer(summary).data)

    @extend_schema(
        operation_id="request_payout",
        summary="Request a payout",
        description=(
            "Transfers the earnings of every completed, paid session not yet "
            "paid out. 202 means the transfer outcome is being confirmed."
        ),
        request=None,
        responses={
            201: PayoutCreatedSerializer,
            202: OpenApiResponse(
                response=PayoutCreatedSerializer,
                description="Transfer sent; outcome confirmed by reconciliation",
            ),
            400: OpenApiResponse(description="Below minimum or account not ready"),
            502: OpenApiResponse(
                response=PayoutCreatedSerializer,
                description="Transfer rejected; the payout can be retried",
            ),
        },
        tags=["Payouts"],
    )
    def post(self, request):
        try:
            payout = PayoutService.request_payout(request.user.id)
        except NoEligibleFundsError as e:
            return error_response(e, shortfallCents=e.shortfall_cents)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            PayoutCreatedSerializer(payout).data,
            status=PAYOUT_RESPONSE_STATUS[PayoutStatus(payout.status)],
        )
