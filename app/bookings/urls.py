"""
URL configuration for the bookings app.

All routes are prefixed with /api/v1/sessions/ when included in the main URLconf.
"""

from django.urls import path

from bookings.views import (
    SessionBookView,
    SessionCancelView,
    SessionCompleteView,
    SessionNoShowView,
    SessionPayView,
    SessionStartView,
)

app_name = "bookings"

urlpatterns = [
    path("", SessionBookView.as_view(), name="session_book"),
    path("<uuid:session_id>/pay/", SessionPayView.as_view(), name="session_pay"),
    path("<uuid:session_id>/cancel/", SessionCancelView.as_view(), name="session_cancel"),
    path("<uuid:session_id>/no-show/", SessionNoShowView.as_view(), name="session_no_show"),
    path("<uuid:session_id>/start/", SessionStartView.as_view(), name="session_start"),
    path("<uuid:session_id>/complete/", SessionCompleteView.as_view(), name="session_complete"),
]
