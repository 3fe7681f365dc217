"""
Service layer for backup operations.

BackupCoordinator is the single entry point used by management commands,
Celery tasks, the periodic scheduler and the process shutdown hook:
- Creating shutdown, manual and periodic backups
- Restoring the latest (or a specific) backup
- Listing and deleting catalogued backups
- Retention cleanup
- Connection testing and status reporting

If the store configuration is invalid the coordinator is disabled for the
lifetime of the process and never touches the network.
"""

import functools
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from django.conf import settings
from django.utils import timezone

from .catalog import SHUTDOWN, BackupCatalog, BackupRecord
from .conf import ConnectionConfig
from .exceptions import (
    BackupConfigurationError,
    BackupError,
    BackupNotFound,
    BackupServiceDisabled,
)
from .health import ConnectionHealthProber
from .restore import RestoreEngine
from .retention import RetentionSweeper
from .scheduler import PeriodicBackupScheduler, get_periodic_settings
from .schema import load_schema_version_provider
from .snapshots import SnapshotReader, SnapshotWriter
from .storage import ObjectStore, build_object_store

logger = logging.getLogger(__name__)

STATUS_BACKUP_LIMIT = 5


class BackupCoordinator:
    """Produces, catalogues, restores and retires database snapshots."""

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        store: Optional[ObjectStore] = None,
        database_path=None,
        schema_provider=None,
        clock: Callable[[], datetime] = timezone.now,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Store connection settings (defaults to Django settings)
            store: Pre-built object store (defaults to an S3 store built from config)
            database_path: Local database file (defaults to settings.BACKUP_DATABASE_PATH)
            schema_provider: Schema-version provider (defaults to the configured one)
            clock: Returns the current aware datetime
            sleep: Sleep function used between connection test attempts
        """
        self.config = config or ConnectionConfig.from_settings()
        self.database_path = Path(
            database_path or getattr(settings, "BACKUP_DATABASE_PATH", "app.db")
        )
        self.clock = clock
        self.disabled_reason: Optional[str] = None
        self.store: Optional[ObjectStore] = None
        self.scheduler = PeriodicBackupScheduler(self)
        self._lock = threading.Lock()

        if not getattr(settings, "BACKUP_ENABLED", True):
            self.disabled_reason = "Backups disabled via BACKUP_ENABLED"
            logger.info("Backup service disabled")
            return

        try:
            if store is None:
                store = build_object_store(self.config)
            else:
                self.config.validate()
        except BackupConfigurationError as e:
            self.disabled_reason = e.message
            logger.warning(f"Backup service disabled: {e.message}")
            return

        self.store = store
        self.catalog = BackupCatalog(
            store,
            prefix=self.config.path_prefix,
            extension=getattr(settings, "BACKUP_FILE_EXTENSION", ".db"),
            scan_limit=getattr(settings, "BACKUP_CATALOG_SCAN_LIMIT", 1000),
        )
        if schema_provider is None:
            schema_provider = load_schema_version_provider()
        self.writer = SnapshotWriter(
            store,
            self.catalog,
            self.database_path,
            schema_provider=schema_provider,
            default_schema_version=getattr(settings, "BACKUP_DEFAULT_SCHEMA_VERSION", "unknown"),
            file_prefix=getattr(settings, "BACKUP_FILE_PREFIX", "app"),
            clock=clock,
        )
        self.reader = SnapshotReader(store)
        self.restorer = RestoreEngine(
            store,
            self.catalog,
            self.reader,
            self.database_path,
            keep_pre_restore_copy=getattr(settings, "BACKUP_KEEP_PRE_RESTORE_COPY", True),
            pre_restore_copies_keep=getattr(settings, "BACKUP_PRE_RESTORE_COPIES_KEEP", 3),
            persist_status=getattr(settings, "BACKUP_PERSIST_RESTORE_STATUS", True),
            clock=clock,
        )
        self.sweeper = RetentionSweeper(store, self.catalog, clock=clock)
        prober_options = {}
        if sleep is not None:
            prober_options["sleep"] = sleep
        self.prober = ConnectionHealthProber(
            store,
            prefix=self.config.path_prefix,
            max_attempts=getattr(settings, "BACKUP_HEALTH_MAX_ATTEMPTS", 3),
            base_delay=getattr(settings, "BACKUP_HEALTH_BASE_DELAY", 1.0),
            diagnoses=getattr(settings, "BACKUP_CONNECTION_DIAGNOSES", None),
            **prober_options,
        )

        logger.info(
            f"Backup service initialized (bucket: {self.config.bucket}, "
            f"path: {self.config.path_prefix!r})"
        )

    @property
    def is_enabled(self) -> bool:
        return self.store is not None

    def _ensure_enabled(self) -> None:
        if not self.is_enabled:
            raise BackupServiceDisabled(
                f"Backup service is disabled: {self.disabled_reason or 'not configured'}"
            )

    def create_backup(self, provenance: str) -> BackupRecord:
        """
        Snapshot the local database file.

        Args:
            provenance: "shutdown", "manual" or "periodic"

        Raises:
            BackupServiceDisabled, DatabaseFileNotFound, BackupLocalIOError, BackupStoreError
        """
        self._ensure_enabled()
        logger.info(f"Starting {provenance} backup...")
        record = self.writer.create_backup(provenance)
        logger.info(f"{provenance.capitalize()} backup completed successfully: {record.id}")
        return record

    def backup_on_shutdown(self) -> Optional[BackupRecord]:
        """
        Create a shutdown backup, swallowing every error.

        Returns:
            The new record, or None if the backup could not be taken
        """
        if not self.is_enabled:
            logger.warning("Shutdown backup skipped: backup service is disabled")
            return None
        try:
            return self.create_backup(SHUTDOWN)
        except Exception as e:
            logger.error(f"Shutdown backup failed: {e}", exc_info=True)
            return None

    def restore_latest(self, force: bool = False) -> Optional[BackupRecord]:
        """
        Restore the latest backup when it is not older than the local file.

        Args:
            force: Restore regardless of timestamps

        Returns:
            The restored record, or None when nothing needed restoring

        Raises:
            BackupServiceDisabled, BackupStoreError, BackupLocalIOError
        """
        self._ensure_enabled()
        with self._lock:
            return self.restorer.restore_latest(force=force)

    def restore_backup(self, backup_id: str) -> BackupRecord:
        """
        Restore a specific backup unconditionally.

        Raises:
            BackupServiceDisabled, BackupNotFound, BackupStoreError, BackupLocalIOError
        """
        self._ensure_enabled()
        with self._lock:
            record = self.catalog.get(backup_id)
            if record is None:
                raise BackupNotFound(f"Backup not found: {backup_id}")
            return self.restorer.restore(record, reason="requested")

    def list_backups(self, limit: int = 20) -> List[BackupRecord]:
        """
        List backups newest first.

        Raises:
            BackupServiceDisabled, BackupStoreError
        """
        self._ensure_enabled()
        return self.catalog.list_backups(limit)

    def describe_backup(self, record: BackupRecord) -> BackupRecord:
        """Enrich a listed record with its stored metadata."""
        self._ensure_enabled()
        return self.catalog.describe(record)

    def delete_backup(self, backup_id: str) -> BackupRecord:
        """
        Delete one backup on operator request.

        Raises:
            BackupServiceDisabled, BackupNotFound, BackupStoreError
        """
        self._ensure_enabled()
        with self._lock:
            record = self.catalog.get(backup_id)
            if record is None:
                raise BackupNotFound(f"Backup not found: {backup_id}")
            self.store.delete(record.key)
        logger.info(f"Deleted backup {backup_id}")
        return record

    def cleanup(self) -> dict:
        """
        Delete backups older than the retention window.

        Per-item failures are reported in the returned statistics, never raised.

        Raises:
            BackupServiceDisabled
        """
        self._ensure_enabled()
        with self._lock:
            return self.sweeper.sweep()

    def test_connection(self) -> bool:
        """Test store connectivity with retries. Never raises."""
        if not self.is_enabled:
            return False
        return self.prober.probe()

    @property
    def last_diagnosis(self) -> Optional[dict]:
        if not self.is_enabled:
            return None
        return self.prober.last_diagnosis

    def get_status(self) -> dict:
        """
        Summarise the backup service state. Never raises.

        Returns:
            Dictionary with enabled, last_backup_timestamp, backup_count,
            connection_healthy, periodic_enabled and periodic_interval_hours
        """
        if not self.is_enabled:
            return {
                "enabled": False,
                "backup_count": 0,
                "connection_healthy": False,
                "periodic_enabled": False,
                "disabled_reason": self.disabled_reason,
            }

        periodic_enabled, interval_hours = get_periodic_settings()
        status = {
            "enabled": True,
            "last_backup_timestamp": None,
            "backup_count": 0,
            "connection_healthy": False,
            "periodic_enabled": periodic_enabled,
            "periodic_interval_hours": interval_hours if periodic_enabled else None,
            "scheduler_running": self.scheduler.is_running,
        }

        try:
            status["connection_healthy"] = self.test_connection()
            if not status["connection_healthy"] and self.prober.last_diagnosis:
                status["diagnosis"] = self.prober.last_diagnosis

            backups = self.list_backups(STATUS_BACKUP_LIMIT)
            status["backup_count"] = len(backups)
            if backups:
                status["last_backup_timestamp"] = backups[0].created_at.isoformat()
        except BackupError as e:
            logger.warning(f"Backup status is partial: {e}")
            status["error"] = e.to_dict()
        except Exception as e:
            logger.error(f"Unexpected error collecting backup status: {e}", exc_info=True)
            status["error"] = {"kind": "unexpected", "message": str(e)}

        return status

    def start_periodic_backups(self) -> bool:
        return self.scheduler.start()

    def stop_periodic_backups(self) -> None:
        self.scheduler.stop()

    def run_periodic_cycle(self) -> None:
        self.scheduler.run_cycle()


@functools.lru_cache(maxsize=None)
def get_backup_coordinator() -> BackupCoordinator:
    """Return the process-wide coordinator, building it on first use."""
    return BackupCoordinator()

