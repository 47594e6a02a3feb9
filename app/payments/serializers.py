"""
Serializers for the payout API.

Serializers:
    PayoutSerializer: Payout details
    PayoutSummarySerializer: Earnings overview (GET payouts/)
    PayoutCreatedSerializer: Result of a payout request (POST payouts/)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Payout


class PayoutSerializer(serializers.ModelSerializer):
    """Read-only payout details."""

    amountCents = serializers.IntegerField(source="amount_cents", read_only=True)
    sessionsIncluded = serializers.ListField(
        source="sessions_included",
        child=serializers.CharField(),
        read_only=True,
    )
    stripeTransferId = serializers.CharField(source="stripe_transfer_id", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True)
    failureReason = serializers.CharField(source="failure_reason", read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "status",
            "amountCents",
            "currency",
            "sessionsIncluded",
            "stripeTransferId",
            "createdAt",
            "completedAt",
            "failureReason",
        ]
        read_only_fields = fields


class PayoutSummarySerializer(serializers.Serializer):
    eligibleSessionCount = serializers.IntegerField(source="eligible_session_count")
    pendingAmountCents = serializers.IntegerField(source="pending_amount_cents")
    totalEarningsCents = serializers.IntegerField(source="total_earnings_cents")
    thisMonthEarningsCents = serializers.IntegerField(source="this_month_earnings_cents")
    minimumPayoutCents = serializers.IntegerField(source="minimum_payout_cents")
    payouts = PayoutSerializer(many=True)


class PayoutCreatedSerializer(serializers.Serializer):
    payoutId = serializers.UUIDField(source="id")
    amountCents = serializers.IntegerField(source="amount_cents")
    status = serializers.CharField()
    sessionsIncluded = serializers.ListField(
        source="sessions_included",
        child=serializers.CharField(),
    )
