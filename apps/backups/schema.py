"""
Schema-version providers.

A provider is any object with a ``current_version() -> str`` method. The
snapshot writer calls it best-effort to stamp each backup with the migration
state of the database it was taken from.
"""

import logging

from django.conf import settings
from django.db import connection
from django.db.migrations.recorder import MigrationRecorder
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class MigrationSchemaVersionProvider:
    """Report the most recently applied Django migration as ``app_label.name``."""

    def __init__(self, connection_=None):
        self.connection = connection_ or connection

    def current_version(self) -> str:
        recorder = MigrationRecorder(self.connection)
        if not recorder.has_table():
            raise LookupError("No migrations have been applied to the database")

        latest = recorder.migration_qs.order_by("-applied", "-id").first()
        if latest is None:
            raise LookupError("No migrations have been applied to the database")
        return f"{latest.app}.{latest.name}"


class StaticSchemaVersionProvider:
    """Always report the same version string."""

    def __init__(self, version: str):
        self.version = version

    def current_version(self) -> str:
        return self.version


def load_schema_version_provider():
    """
    Instantiate the provider named by settings.BACKUP_SCHEMA_VERSION_PROVIDER.

    Returns:
        Provider instance, or None if the setting is empty or can't be imported
    """
    dotted_path = getattr(settings, "BACKUP_SCHEMA_VERSION_PROVIDER", "")
    if not dotted_path:
        return None

    try:
        provider_class = import_string(dotted_path)
        return provider_class()
    except (ImportError, TypeError) as e:
        logger.warning(f"Could not load schema version provider {dotted_path}: {e}")
        return None
