"""
Bookings admin configuration.

Sessions and packages are read-mostly here: status changes go through
SessionLedger and CoachingLedger, never through admin forms.
"""

from django.contrib import admin

from bookings.models import CoachingPackage, ExpertSession


@admin.register(ExpertSession)
class ExpertSessionAdmin(admin.ModelAdmin):
    """
    Admin configuration for ExpertSession.

    Provides visibility into session lifecycle and refund outcomes.
    """

    list_display = [
        "id",
        "candidate",
        "interviewer",
        "scheduled_at",
        "status",
        "payment_status",
        "price_display",
        "refund_amount_in_cents",
        "payout_id",
    ]
    list_filter = ["status", "payment_status", "session_type", "scheduled_at"]
    search_fields = ["id", "payment_intent_id", "refund_id", "candidate__email", "interviewer__email"]
    readonly_fields = [
        "id",
        "status",
        "payment_status",
        "payment_intent_id",
        "refund_id",
        "refund_amount_in_cents",
        "refund_percentage",
        "refund_reason",
        "package_credit_returned",
        "payout_id",
        "started_at",
        "completed_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "scheduled_at"
    ordering = ["-scheduled_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "candidate", "interviewer", "session_type", "notes"),
            },
        ),
        (
            "Schedule",
            {
                "fields": ("scheduled_at", "duration_minutes", "status"),
            },
        ),
        (
            "Money",
            {
                "fields": (
                    "price_in_cents",
                    "platform_fee_in_cents",
                    "interviewer_payout_in_cents",
                    "payment_status",
                    "payment_intent_id",
                    "coaching_package",
                    "payout_id",
                ),
            },
        ),
        (
            "Cancellation",
            {
                "fields": (
                    "cancelled_at",
                    "cancellation_reason",
                    "no_show_party",
                    "refund_id",
                    "refund_amount_in_cents",
                    "refund_percentage",
                    "refund_reason",
                    "package_credit_returned",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("started_at", "completed_at", "created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Price")
    def price_display(self, obj: ExpertSession) -> str:
        return f"${obj.price_in_cents / 100:.2f}"


@admin.register(CoachingPackage)
class CoachingPackageAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "user",
        "package_type",
        "remaining_sessions",
        "used_sessions",
        "status",
        "expires_at",
    ]
    list_filter = ["status", "package_type"]
    search_fields = ["id", "user__email"]
    readonly_fields = [
        "id",
        "total_sessions",
        "remaining_sessions",
        "used_sessions",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
