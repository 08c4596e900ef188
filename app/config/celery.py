"""
Celery configuration for the ledger project.

Celery runs the scheduled monthly host settlement. Redis is both the
message broker and result backend; the beat schedule lives in
CELERY_BEAT_SCHEDULE and is persisted by django_celery_beat.

Usage:
    from ledger.tasks import run_host_settlement

    # Re-run last month's settlement for one host, without writing
    run_host_settlement.delay(host_id=42, dry_run=True)
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up ledger/tasks.py
app.autodiscover_tasks()
