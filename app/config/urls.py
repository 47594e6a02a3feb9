"""
URL configuration for the Django application.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/sessions/              - Session endpoints
        (POST)                     - Book a session
        {id}/pay/                  - Pay for a pending session
        {id}/cancel/               - Preview (GET) or cancel (POST)
        {id}/no-show/              - Report a no-show
    /api/v1/payments/              - Payment endpoints
        payouts/                   - Payout summary (GET) and request (POST)
    /api/v1/health/                - Health check under the API prefix

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Sessions
    path("sessions/", include("bookings.urls")),
    # Payments
    path("payments/", include("payments.urls")),
    path("health/", health_check, name="api_health_check"),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Expert Sessions Admin"
admin.site.site_title = "Admin Portal"
admin.site.index_title = "Sessions, payouts and reconciliation"
