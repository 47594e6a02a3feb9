"""
Serializers for the session API.

Request serializers validate input; response serializers render the
service result dataclasses. Field names on the wire are camelCase.

Serializers:
    BookSessionSerializer: Book a session
    PaySessionSerializer: Pay for a pending session
    CancelSessionSerializer: Optional cancellation reason
    NoShowSerializer: Which party did not attend
    ExpertSessionSerializer: Session details
    RefundOutcomeSerializer: What happened to the money
    CancellationResultSerializer: Cancel / no-show response
    CancellationPreviewSerializer: Cancel preview response
"""

from __future__ import annotations

from rest_framework import serializers

from bookings.models import ExpertSession
from bookings.state_machines import NoShowParty, SessionType


class BookSessionSerializer(serializers.Serializer):
    interviewerId = serializers.IntegerField(source="interviewer_id")
    scheduledAt = serializers.DateTimeField(source="scheduled_at")
    durationMinutes = serializers.IntegerField(source="duration_minutes", default=60)
    sessionType = serializers.ChoiceField(
        source="session_type",
        choices=SessionType.choices,
        default=SessionType.CODING,
    )
    priceInCents = serializers.IntegerField(source="price_in_cents", min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    coachingPackageId = serializers.UUIDField(
        source="coaching_package_id",
        required=False,
        allow_null=True,
        default=None,
    )


class PaySessionSerializer(serializers.Serializer):
    paymentMethodId = serializers.CharField(source="payment_method_id", max_length=255)


class CancelSessionSerializer(serializers.Serializer):
    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=500,
        default="",
    )


class NoShowSerializer(serializers.Serializer):
    party = serializers.ChoiceField(choices=NoShowParty.choices)


class ExpertSessionSerializer(serializers.ModelSerializer):
    """Read-only session details."""

    candidateId = serializers.IntegerField(source="candidate_id", read_only=True)
    interviewerId = serializers.IntegerField(source="interviewer_id", read_only=True)
    sessionType = serializers.CharField(source="session_type", read_only=True)
    scheduledAt = serializers.DateTimeField(source="scheduled_at", read_only=True)
    durationMinutes = serializers.IntegerField(source="duration_minutes", read_only=True)
    paymentStatus = serializers.CharField(source="payment_status", read_only=True)
    priceInCents = serializers.IntegerField(source="price_in_cents", read_only=True)
    coachingPackageId = serializers.UUIDField(source="coaching_package_id", read_only=True)
    startedAt = serializers.DateTimeField(source="started_at", read_only=True)
    completedAt = serializers.DateTimeField(source="completed_at", read_only=True)
    cancelledAt = serializers.DateTimeField(source="cancelled_at", read_only=True)
    cancellationReason = serializers.CharField(source="cancellation_reason", read_only=True)
    refundAmountCents = serializers.IntegerField(source="refund_amount_in_cents", read_only=True)

    class Meta:
        model = ExpertSession
        fields = [
            "id",
            "candidateId",
            "interviewerId",
            "sessionType",
            "scheduledAt",
            "durationMinutes",
            "status",
            "paymentStatus",
            "priceInCents",
            "coachingPackageId",
            "startedAt",
            "completedAt",
            "cancelledAt",
            "cancellationReason",
            "refundAmountCents",
        ]
        read_only_fields = fields


class RefundOutcomeSerializer(serializers.Serializer):
    percentage = serializers.IntegerField()
    amountCents = serializers.IntegerField(source="amount_cents")
    reason = serializers.CharField()
    refundId = serializers.CharField(source="refund_id", allow_null=True)
    packageSessionReturned = serializers.BooleanField(source="package_session_returned")
    reconciliationPending = serializers.BooleanField(source="reconciliation_pending")


class CancellationResultSerializer(serializers.Serializer):
    sessionId = serializers.UUIDField(source="session.id")
    status = serializers.CharField()
    paymentStatus = serializers.CharField(source="session.payment_status")
    refund = RefundOutcomeSerializer()


class CancellationPreviewSerializer(serializers.Serializer):
    canCancel = serializers.BooleanField(source="can_cancel")
    status = serializers.CharField()
    percentage = serializers.IntegerField()
    amountCents = serializers.IntegerField(source="amount_cents")
    reason = serializers.CharField()
    isCoachingPackage = serializers.BooleanField(source="is_coaching_package")
    packageSessionReturned = serializers.BooleanField(source="package_session_returned")
