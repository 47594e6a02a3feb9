"""
Add celery-beat schedules for session housekeeping.

- expire_unpaid_sessions every 5 minutes
- mark_no_shows every 10 minutes
"""

from django.db import migrations

TASKS = [
    {
        "name": "Expire Unpaid Sessions",
        "task": "bookings.tasks.expire_unpaid_sessions",
        "every": 5,
        "description": "Cancels sessions left in pending_payment past the checkout window.",
    },
    {
        "name": "Mark No-Show Sessions",
        "task": "bookings.tasks.mark_no_shows",
        "every": 10,
        "description": "Closes scheduled sessions whose slot ended without anyone joining.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the housekeeping periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for task in TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=task["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=task["name"],
            defaults={
                "task": task["task"],
                "interval": schedule,
                "enabled": True,
                "description": task["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[task["name"] for task in TASKS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("bookings", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
