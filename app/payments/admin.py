"""
Payment admin configuration.

Status fields are read-only: payouts and reconciliation records change
through PayoutService and ReconciliationService only.
"""

from django.contrib import admin

from payments.models import ConnectedAccount, Payout, ReconciliationRecord

__all__ = [
    "ConnectedAccountAdmin",
    "PayoutAdmin",
    "ReconciliationRecordAdmin",
]


@admin.register(ConnectedAccount)
class ConnectedAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for ConnectedAccount.

    Provides visibility into Stripe Connect account status.
    """

    list_display = [
        "id",
        "user",
        "stripe_account_id",
        "payouts_enabled",
        "details_submitted",
        "created_at",
    ]
    list_filter = ["payouts_enabled", "details_submitted"]
    search_fields = ["id", "stripe_account_id", "user__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and history.
    """

    list_display = [
        "id",
        "interviewer",
        "connected_account",
        "amount_display",
        "status",
        "attempts",
        "completed_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = [
        "id",
        "stripe_transfer_id",
        "connected_account__stripe_account_id",
    ]
    readonly_fields = [
        "id",
        "status",
        "sessions_included",
        "stripe_transfer_id",
        "attempts",
        "completed_at",
        "failed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "interviewer", "connected_account", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_cents", "currency", "sessions_included"),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": ("stripe_transfer_id", "attempts"),
            },
        ),
        (
            "Status Timestamps",
            {
                "fields": ("completed_at", "failed_at"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Payout) -> str:
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"


@admin.register(ReconciliationRecord)
class ReconciliationRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for ReconciliationRecord.

    Records with local_status=failed need an operator.
    """

    list_display = [
        "id",
        "operation",
        "session",
        "payout",
        "amount_cents",
        "gateway_status",
        "local_status",
        "attempts",
        "created_at",
    ]
    list_filter = ["operation", "gateway_status", "local_status"]
    search_fields = ["id", "external_idempotency_key", "external_id"]
    readonly_fields = [
        "id",
        "operation",
        "session",
        "payout",
        "external_idempotency_key",
        "external_id",
        "amount_cents",
        "gateway_status",
        "payload",
        "attempts",
        "last_error",
        "applied_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
