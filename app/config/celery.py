"""
Celery configuration for the escrow engine.

Celery runs the engine's background work:
- The daily auto-release sweep over held payments past their deadline
- Batch processing of approved payout requests

This configuration uses Redis as both the message broker and result backend.
Periodic schedules are stored in the database (django-celery-beat
DatabaseScheduler) and registered by escrow data migrations.

Usage:
    # Trigger the sweep by hand:
    from escrow.workers import process_due_releases

    process_due_releases.delay()

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

# Tasks live in escrow.workers rather than a tasks.py module
app.autodiscover_tasks(related_name="workers")
