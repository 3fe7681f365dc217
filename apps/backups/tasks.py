"""
Celery tasks for the backup system.

This module wraps coordinator operations so they can run on a worker:
- Creating backups (manual, shutdown, periodic)
- Restoring the latest backup
- Retention cleanup
- The periodic backup + cleanup cycle used by Celery beat

Tasks never retry store failures (only the connection prober retries) and
never raise coordinator errors: every result is a dictionary with a
``success`` flag and, on failure, a structured ``error``.
"""

import logging

from celery import shared_task

from .catalog import MANUAL, PERIODIC
from .exceptions import BackupError
from .services import get_backup_coordinator

logger = logging.getLogger(__name__)


def _failure(error: BackupError) -> dict:
    return {"success": False, "error": error.to_dict()}


@shared_task(name="apps.backups.tasks.create_backup")
def create_backup(provenance: str = MANUAL) -> dict:
    """
    Create a backup with the given provenance.

    Args:
        provenance: "manual", "shutdown" or "periodic"

    Returns:
        Dictionary with the backup record on success, or a structured error
    """
    try:
        record = get_backup_coordinator().create_backup(provenance)
    except BackupError as e:
        logger.error(f"{provenance} backup task failed: {e}")
        return _failure(e)

    return {"success": True, "backup": record.to_dict()}


@shared_task(name="apps.backups.tasks.restore_latest_backup")
def restore_latest_backup(force: bool = False) -> dict:
    """
    Restore the latest backup if it is not older than the local database.

    Returns:
        Dictionary with ``restored`` and the restored record, or a structured error
    """
    try:
        record = get_backup_coordinator().restore_latest(force=force)
    except BackupError as e:
        logger.error(f"Restore task failed: {e}")
        return _failure(e)

    return {
        "success": True,
        "restored": record is not None,
        "backup": record.to_dict() if record else None,
    }


@shared_task(name="apps.backups.tasks.cleanup_old_backups")
def cleanup_old_backups() -> dict:
    """
    Delete backups older than BACKUP_RETENTION_DAYS.

    Returns:
        Dictionary with cleanup statistics
    """
    try:
        stats = get_backup_coordinator().cleanup()
    except BackupError as e:
        logger.error(f"Cleanup task failed: {e}")
        return _failure(e)

    stats["success"] = not stats["errors"]
    return stats


@shared_task(name="apps.backups.tasks.periodic_backup_cycle")
def periodic_backup_cycle() -> dict:
    """
    Run one periodic backup followed by cleanup.

    Registered on Celery beat when BACKUP_SCHEDULER_BACKEND is "celery".
    A failed backup skips the cleanup of that cycle.
    """
    coordinator = get_backup_coordinator()

    try:
        record = coordinator.create_backup(PERIODIC)
    except BackupError as e:
        logger.error(f"Periodic backup failed: {e}")
        return _failure(e)

    try:
        cleanup = coordinator.cleanup()
    except BackupError as e:
        logger.error(f"Cleanup after periodic backup failed: {e}")
        return {"success": False, "backup": record.to_dict(), "error": e.to_dict()}

    return {"success": True, "backup": record.to_dict(), "cleanup": cleanup}
