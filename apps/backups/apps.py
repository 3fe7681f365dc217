"""
App configuration for the backups app.
"""

from django.apps import AppConfig
from django.conf import settings


class BackupsConfig(AppConfig):
    """Configuration for the backups app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.backups"
    verbose_name = "Database Backups"

    def ready(self):
        """
        Install the startup/shutdown hooks when enabled.
        """
        if getattr(settings, "BACKUP_LIFECYCLE_HOOKS_ENABLED", False):
            # Imported here to avoid building the coordinator at import time
            from . import lifecycle

            lifecycle.install()
