"""
Celery configuration for the Django application.

Celery runs the background work of the booking engine:
- Session housekeeping (bookings.tasks)
- Reconciliation of refunds and transfers (payments.workers)
- Payout retries (payments.tasks)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; periodic
schedules are stored by django-celery-beat.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery looks for a tasks.py module in each installed app
app.autodiscover_tasks()
