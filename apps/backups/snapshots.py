"""
Snapshot writer and reader.

The writer streams the local database file to the object store under a key
derived from the backup provenance and the current instant. The reader
streams a snapshot back to a local path, replacing the destination only once
the download is complete.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from datetime import timezone as dt_timezone
from pathlib import Path
from typing import Callable, Optional, Tuple

from django.utils import timezone

from .catalog import (
    DEFAULT_SCHEMA_VERSION,
    META_CREATED_AT,
    META_PROVENANCE,
    META_SCHEMA_VERSION,
    META_SIZE,
    PROVENANCES,
    BackupCatalog,
    BackupRecord,
)
from .exceptions import BackupLocalIOError, BackupStoreError, DatabaseFileNotFound
from .storage import ObjectStore

logger = logging.getLogger(__name__)

ID_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
MAX_ID_SEQUENCE = 100
COPY_CHUNK_SIZE = 1024 * 1024


def generate_backup_id(
    provenance: str,
    created_at: datetime,
    file_prefix: str = "app",
    extension: str = ".db",
    sequence: int = 1,
) -> str:
    """
    Generate a backup id such as ``app-manual-2024-01-02T03-04-05.db``.

    The instant is converted to UTC and truncated to whole seconds; colons are
    replaced so the id is safe as an object key. A sequence above 1 is
    appended to the timestamp to disambiguate backups taken in the same second.
    """
    stamp = created_at.astimezone(dt_timezone.utc).strftime(ID_TIMESTAMP_FORMAT)
    if sequence > 1:
        stamp = f"{stamp}-{sequence}"
    return f"{file_prefix}-{provenance}-{stamp}{extension}"


class SnapshotWriter:
    """Uploads the local database file as a new snapshot."""

    def __init__(
        self,
        store: ObjectStore,
        catalog: BackupCatalog,
        database_path,
        schema_provider=None,
        default_schema_version: str = DEFAULT_SCHEMA_VERSION,
        file_prefix: str = "app",
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.store = store
        self.catalog = catalog
        self.database_path = Path(database_path)
        self.schema_provider = schema_provider
        self.default_schema_version = default_schema_version
        self.file_prefix = file_prefix
        self.clock = clock

    def get_schema_version(self) -> str:
        """Best-effort schema version; never raises."""
        if self.schema_provider is None:
            return self.default_schema_version
        try:
            version = self.schema_provider.current_version()
        except Exception as e:
            logger.warning(
                f"Could not determine schema version, using {self.default_schema_version!r}: {e}"
            )
            return self.default_schema_version
        return str(version) if version else self.default_schema_version

    def reserve_id(self, provenance: str, created_at: datetime) -> Tuple[str, str]:
        """
        Pick an id whose key is not already taken in the store.

        Returns:
            Tuple of (backup_id, object_key)
        """
        for sequence in range(1, MAX_ID_SEQUENCE + 1):
            backup_id = generate_backup_id(
                provenance,
                created_at,
                file_prefix=self.file_prefix,
                extension=self.catalog.extension,
                sequence=sequence,
            )
            key = self.catalog.key_for(backup_id)
            if self.store.head(key) is None:
                if sequence > 1:
                    logger.info(f"Backup id collision within one second, using {backup_id}")
                return backup_id, key

        raise BackupStoreError(
            f"No free backup id for {provenance} backup at {created_at.isoformat()}",
            operation="put",
        )

    def create_backup(self, provenance: str) -> BackupRecord:
        """
        Snapshot the local database file to the object store.

        Args:
            provenance: Why the backup is taken (shutdown, manual or periodic)

        Returns:
            BackupRecord for the new snapshot

        Raises:
            ValueError: if provenance is not recognised
            DatabaseFileNotFound: if the database file doesn't exist
            BackupLocalIOError: if the database file can't be read
            BackupStoreError: if the upload fails
        """
        if provenance not in PROVENANCES:
            raise ValueError(f"Unknown backup provenance: {provenance}")

        if not self.database_path.is_file():
            raise DatabaseFileNotFound(f"Database file not found: {self.database_path}")

        created_at = self.clock().replace(microsecond=0)
        schema_version = self.get_schema_version()
        backup_id, key = self.reserve_id(provenance, created_at)

        try:
            with open(self.database_path, "rb") as stream:
                size_bytes = os.fstat(stream.fileno()).st_size
                metadata = {
                    META_PROVENANCE: provenance,
                    META_CREATED_AT: created_at.isoformat(),
                    META_SIZE: str(size_bytes),
                    META_SCHEMA_VERSION: schema_version,
                }

                logger.info(
                    f"Uploading {self.database_path} to {key} "
                    f"({size_bytes / 1024 / 1024:.2f} MB, {provenance})"
                )
                self.store.put(key, stream, metadata)
        except OSError as e:
            raise BackupLocalIOError(f"Failed to read {self.database_path}: {e}") from e

        logger.info(f"Uploaded backup {backup_id}")

        return BackupRecord(
            id=backup_id,
            provenance=provenance,
            created_at=created_at,
            size_bytes=size_bytes,
            schema_version=schema_version,
            key=key,
        )


class SnapshotReader:
    """Downloads snapshots to local paths without leaving partial files behind."""

    def __init__(self, store: ObjectStore):
        self.store = store

    def _discard(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary file {path}: {e}")

    def download(
        self,
        record: BackupRecord,
        destination,
        before_replace: Optional[Callable[[Path], None]] = None,
    ) -> Path:
        """
        Download a snapshot over the destination path.

        The payload is written to a temporary file in the destination directory
        and renamed over the destination only after a complete download.

        Args:
            record: Backup to download
            destination: Local path to write
            before_replace: Called with the destination just before the rename

        Returns:
            The destination path

        Raises:
            BackupStoreError: if the download fails (destination untouched)
            BackupLocalIOError: if the local write fails (destination untouched)
        """
        destination = Path(destination)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{destination.name}.", suffix=".restore", dir=destination.parent
            )
        except OSError as e:
            raise BackupLocalIOError(f"Cannot write to {destination.parent}: {e}") from e

        logger.info(f"Downloading {record.key} to {destination}")

        try:
            with os.fdopen(fd, "wb") as fh:
                body = self.store.get(record.key)
                try:
                    shutil.copyfileobj(body, fh, COPY_CHUNK_SIZE)
                finally:
                    body.close()
                fh.flush()
                os.fsync(fh.fileno())

            if before_replace is not None:
                before_replace(destination)

            os.replace(tmp_path, destination)
        except OSError as e:
            self._discard(tmp_path)
            raise BackupLocalIOError(f"Failed to write {destination}: {e}") from e
        except Exception:
            self._discard(tmp_path)
            raise

        logger.info(f"Downloaded {record.id} to {destination}")
        return destination
