"""
Add celery-beat schedules for the escrow workers.

- Daily auto-release sweep at ESCROW_AUTO_RELEASE_CRON_HOUR (UTC)
- Approved payout processing every 15 minutes
"""

from django.conf import settings
from django.db import migrations

AUTO_RELEASE_TASK_NAME = "Release Due Escrow Payments"
PAYOUT_TASK_NAME = "Process Approved Payout Requests"


def create_periodic_tasks(apps, schema_editor):
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    crontab, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour=str(getattr(settings, "ESCROW_AUTO_RELEASE_CRON_HOUR", 2)),
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
        timezone="UTC",
    )
    PeriodicTask.objects.get_or_create(
        name=AUTO_RELEASE_TASK_NAME,
        defaults={
            "task": "escrow.workers.auto_release.process_due_releases",
            "crontab": crontab,
            "enabled": True,
            "description": (
                "Releases held payments whose auto-release deadline has passed."
            ),
        },
    )

    interval, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )
    PeriodicTask.objects.get_or_create(
        name=PAYOUT_TASK_NAME,
        defaults={
            "task": "escrow.workers.payout_processor.process_approved_payouts",
            "interval": interval,
            "enabled": True,
            "description": "Queues processing for approved payout requests.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[AUTO_RELEASE_TASK_NAME, PAYOUT_TASK_NAME],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
