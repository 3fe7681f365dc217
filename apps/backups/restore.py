"""
Restore decision engine.

Decides whether the latest catalogued backup should replace the local
database file, and performs the restore. The decision never clobbers a local
file that is strictly newer than the candidate snapshot, unless a restore is
forced, and always restores when no local file exists.
"""

import logging
import shutil
from datetime import datetime
from datetime import timezone as dt_timezone
from pathlib import Path
from typing import Callable, Optional

from django.utils import timezone

from .catalog import LATEST_RESTORED, BackupCatalog, BackupRecord
from .exceptions import BackupStoreError
from .snapshots import SnapshotReader
from .storage import ObjectStore

logger = logging.getLogger(__name__)

RESTORE_CANDIDATES = 10

PRE_RESTORE_SUFFIX = ".pre-restore-"
DEFAULT_PRE_RESTORE_COPIES_KEEP = 3

# Decisions
NO_LOCAL = "no_local"
FORCED = "forced"
REMOTE_NEWER = "remote_newer"
LOCAL_NEWER = "local_newer"

RESTORING_DECISIONS = (NO_LOCAL, FORCED, REMOTE_NEWER)


def get_local_mtime(path: Path) -> Optional[datetime]:
    """Last-modified time of the local file as an aware UTC datetime, or None."""
    try:
        return datetime.fromtimestamp(path.stat().st_mtime, tz=dt_timezone.utc)
    except FileNotFoundError:
        return None


def decide(candidate: BackupRecord, database_path, force: bool = False) -> str:
    """
    Decide whether ``candidate`` should be restored over ``database_path``.

    Returns:
        NO_LOCAL, FORCED or REMOTE_NEWER when the candidate should be restored,
        LOCAL_NEWER when the local file is strictly newer and must be kept
    """
    local_mtime = get_local_mtime(Path(database_path))
    if local_mtime is None:
        return NO_LOCAL
    if force:
        return FORCED
    if local_mtime > candidate.created_at:
        return LOCAL_NEWER
    return REMOTE_NEWER


class RestoreEngine:
    """Restores catalogued backups over the local database file."""

    def __init__(
        self,
        store: ObjectStore,
        catalog: BackupCatalog,
        reader: SnapshotReader,
        database_path,
        keep_pre_restore_copy: bool = True,
        pre_restore_copies_keep: int = DEFAULT_PRE_RESTORE_COPIES_KEEP,
        persist_status: bool = True,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.store = store
        self.catalog = catalog
        self.reader = reader
        self.database_path = Path(database_path)
        self.keep_pre_restore_copy = keep_pre_restore_copy
        self.pre_restore_copies_keep = max(1, pre_restore_copies_keep)
        self.persist_status = persist_status
        self.clock = clock

    def _pre_restore_copy(self, destination: Path) -> None:
        if not self.keep_pre_restore_copy or not destination.exists():
            return
        stamp = self.clock().strftime("%Y%m%dT%H%M%S")
        copy_path = destination.with_name(f"{destination.name}{PRE_RESTORE_SUFFIX}{stamp}")
        shutil.copy2(destination, copy_path)
        logger.info(f"Saved current database to {copy_path} before restore")
        self._prune_pre_restore_copies(destination)

    def _prune_pre_restore_copies(self, destination: Path) -> None:
        # Stamps sort chronologically, so name order is age order
        copies = sorted(
            destination.parent.glob(f"{destination.name}{PRE_RESTORE_SUFFIX}*"), reverse=True
        )
        for stale in copies[self.pre_restore_copies_keep:]:
            try:
                stale.unlink()
                logger.info(f"Removed old pre-restore copy {stale}")
            except OSError as e:
                logger.warning(f"Could not remove old pre-restore copy {stale}: {e}")

    def mark_restored(self, record: BackupRecord) -> None:
        """
        Tag a record as the latest restored backup.

        When persistence is enabled the tag is written to the catalog's restore
        marker object. The snapshot itself is never rewritten, so its creation
        time and retention are unaffected. Failing to write the marker is
        logged and never fails the restore.
        """
        record.status = LATEST_RESTORED

        if not self.persist_status:
            logger.info(f"Backup {record.id} marked {LATEST_RESTORED}")
            return

        try:
            self.catalog.write_restore_marker(record, self.clock())
            logger.info(f"Backup {record.id} marked {LATEST_RESTORED}")
        except BackupStoreError as e:
            logger.warning(f"Could not persist {LATEST_RESTORED} status on {record.id}: {e}")

    def restore(self, record: BackupRecord, reason: str) -> BackupRecord:
        """
        Download ``record`` over the local database file.

        Raises:
            BackupStoreError: if the download fails; the local file is untouched
            BackupLocalIOError: if the local file can't be written
        """
        logger.info(
            f"Restoring backup {record.id} ({record.provenance}, "
            f"{record.get_size_mb()} MB, schema {record.schema_version}), reason: {reason}"
        )

        self.reader.download(record, self.database_path, before_replace=self._pre_restore_copy)
        self.mark_restored(record)

        logger.info(f"Backup {record.id} restored successfully")
        return record

    def restore_latest(self, force: bool = False) -> Optional[BackupRecord]:
        """
        Restore the most recent backup if the decision says so.

        Args:
            force: Restore regardless of timestamps

        Returns:
            The restored record, or None if nothing was restored
        """
        try:
            backups = self.catalog.list_backups(RESTORE_CANDIDATES)
        except BackupStoreError as e:
            logger.warning(f"Could not list backups, nothing to restore: {e}")
            return None

        if not backups:
            logger.info("No backups found to restore")
            return None

        candidate = backups[0]
        decision = decide(candidate, self.database_path, force=force)

        if decision == LOCAL_NEWER:
            logger.info(
                f"Local database ({get_local_mtime(self.database_path).isoformat()}) is newer "
                f"than backup {candidate.id} ({candidate.created_at.isoformat()}), keeping local"
            )
            return None

        try:
            candidate = self.catalog.describe(candidate)
        except BackupStoreError as e:
            logger.warning(f"Could not read metadata of {candidate.id}: {e}")

        return self.restore(candidate, reason=decision)
