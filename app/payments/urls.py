"""
URL configuration for the payments app.

Routes:
    - GET/POST /payouts/ - Payout summary and payout requests

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import PayoutView

app_name = "payments"

urlpatterns = [
    path("payouts/", PayoutView.as_view(), name="payouts"),
]
