"""
Add celery-beat schedule for the reconciliation worker.

Runs run_scheduled_reconciliation every 15 minutes to finish refunds
and transfers left between the gateway call and the local write.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for reconciliation."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Reconcile Refunds And Transfers",
        defaults={
            "task": "payments.workers.reconciliation_worker.run_scheduled_reconciliation",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Re-applies confirmed refunds and transfers and looks up "
                "operations whose gateway outcome is unknown."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name="Reconcile Refunds And Transfers",
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
