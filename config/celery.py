"""
Celery configuration for the backup coordinator.
"""

import os

from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("backup_coordinator")

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Task routing configuration
app.conf.task_routes = {
    "apps.backups.tasks.*": {"queue": "backups", "priority": 10},
}


def get_backup_beat_schedule(django_settings) -> dict:
    """
    Build the beat entries for periodic backups.

    Periodic backups run on beat only when they are enabled and the
    scheduler backend is "celery"; the "thread" backend runs them in-process.
    """
    if not getattr(django_settings, "PERIODIC_BACKUP_ENABLED", False):
        return {}
    if getattr(django_settings, "BACKUP_SCHEDULER_BACKEND", "thread") != "celery":
        return {}

    interval_hours = float(getattr(django_settings, "PERIODIC_BACKUP_INTERVAL_HOURS", 24))
    return {
        # Periodic backup followed by retention cleanup
        "periodic-database-backup": {
            "task": "apps.backups.tasks.periodic_backup_cycle",
            "schedule": interval_hours * 60 * 60,
            "options": {"queue": "backups", "priority": 10},
        },
    }


@app.on_after_configure.connect
def setup_backup_schedule(sender, **kwargs):
    from django.conf import settings

    sender.conf.beat_schedule.update(get_backup_beat_schedule(settings))
