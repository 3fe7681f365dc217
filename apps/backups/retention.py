"""
Retention sweeper.

Deletes catalogued backups older than the configured retention window. The
window is read from settings on every sweep. Each deletion is attempted
independently: one failure is logged and counted, and the sweep carries on.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from django.conf import settings
from django.utils import timezone

from .catalog import BackupCatalog
from .exceptions import BackupStoreError
from .storage import ObjectStore

logger = logging.getLogger(__name__)

CLEANUP_SCAN_LIMIT = 1000
DEFAULT_RETENTION_DAYS = 30


def get_retention_days() -> int:
    """Read BACKUP_RETENTION_DAYS from settings, falling back to the default."""
    value = getattr(settings, "BACKUP_RETENTION_DAYS", DEFAULT_RETENTION_DAYS)
    try:
        retention_days = int(value)
    except (TypeError, ValueError):
        logger.warning(
            f"Invalid BACKUP_RETENTION_DAYS {value!r}, using {DEFAULT_RETENTION_DAYS}"
        )
        return DEFAULT_RETENTION_DAYS

    if retention_days < 0:
        logger.warning(
            f"Negative BACKUP_RETENTION_DAYS {retention_days}, using {DEFAULT_RETENTION_DAYS}"
        )
        return DEFAULT_RETENTION_DAYS
    return retention_days


class RetentionSweeper:
    """Deletes backups that fell out of the retention window."""

    def __init__(
        self,
        store: ObjectStore,
        catalog: BackupCatalog,
        clock: Callable[[], datetime] = timezone.now,
        retention_days: Callable[[], int] = get_retention_days,
    ):
        self.store = store
        self.catalog = catalog
        self.clock = clock
        self.retention_days = retention_days

    def sweep(self) -> dict:
        """
        Delete every backup created before ``now - retention_days``.

        Returns:
            Dictionary with cleanup statistics
        """
        retention_days = self.retention_days()
        cutoff = self.clock() - timedelta(days=retention_days)

        stats = {
            "retention_days": retention_days,
            "cutoff": cutoff.isoformat(),
            "scanned": 0,
            "deleted": 0,
            "failed": 0,
            "deleted_ids": [],
            "errors": [],
        }

        logger.info(f"Starting backup cleanup (retention {retention_days} days, cutoff {cutoff})")

        try:
            backups = self.catalog.list_backups(CLEANUP_SCAN_LIMIT)
        except BackupStoreError as e:
            logger.error(f"Backup cleanup could not list backups: {e}")
            stats["errors"].append(str(e))
            return stats

        stats["scanned"] = len(backups)
        expired = [backup for backup in backups if backup.created_at < cutoff]

        if not expired:
            logger.info("No old backups to clean up")
            return stats

        logger.info(f"Cleaning up {len(expired)} old backups")

        for backup in expired:
            try:
                self.store.delete(backup.key)
                stats["deleted"] += 1
                stats["deleted_ids"].append(backup.id)
                logger.info(f"Deleted old backup {backup.id}")
            except BackupStoreError as e:
                stats["failed"] += 1
                stats["errors"].append(f"Deletion failed for {backup.id}: {e}")
                logger.error(f"Failed to delete old backup {backup.id}: {e}")

        logger.info(
            f"Backup cleanup completed: {stats['deleted']} deleted, {stats['failed']} failed"
        )
        return stats
