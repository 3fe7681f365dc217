"""
Backup catalog.

The bucket is the only source of truth: there is no local index. The catalog
lists snapshot objects under the backup prefix and turns each one into a
BackupRecord. Creation time always comes from the object's last-modified
timestamp, never from the id, since the id is truncated to whole seconds.

Snapshot objects are written once and never modified. The most recently
restored backup is named by a small JSON marker object under the same prefix.
"""

import io
import json
import logging
import posixpath
from datetime import datetime
from typing import List, Optional

from .storage import ObjectInfo, ObjectStore

logger = logging.getLogger(__name__)

# Provenance choices
SHUTDOWN = "shutdown"
MANUAL = "manual"
PERIODIC = "periodic"

PROVENANCE_CHOICES = [
    (SHUTDOWN, "Shutdown Backup"),
    (MANUAL, "Manual Backup"),
    (PERIODIC, "Periodic Backup"),
]
PROVENANCES = [value for value, _ in PROVENANCE_CHOICES]

# Status choices
LATEST_RESTORED = "latest_restored"

# Object under the backup prefix naming the most recently restored backup.
# Snapshot objects are never rewritten, so their last-modified time stays
# their creation time.
RESTORE_MARKER_NAME = "latest-restored.json"

DEFAULT_SCHEMA_VERSION = "unknown"

# Object metadata keys written by the snapshot writer
META_PROVENANCE = "provenance"
META_CREATED_AT = "created-at"
META_SIZE = "size-bytes"
META_SCHEMA_VERSION = "schema-version"


def parse_provenance(key: str) -> str:
    """
    Recover the provenance from an object key.

    This is a heuristic substring match; anything unrecognised is treated as
    a manual backup rather than an error.
    """
    filename = posixpath.basename(key)
    if f"-{SHUTDOWN}-" in filename:
        return SHUTDOWN
    if f"-{PERIODIC}-" in filename:
        return PERIODIC
    return MANUAL


class BackupRecord:
    """One snapshot resident in the object store."""

    def __init__(
        self,
        id: str,
        provenance: str,
        created_at: datetime,
        size_bytes: int,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        status: Optional[str] = None,
        key: Optional[str] = None,
    ):
        self.id = id
        self.provenance = provenance
        self.created_at = created_at
        self.size_bytes = size_bytes
        self.schema_version = schema_version
        self.status = status
        self.key = key or id

    def get_size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provenance": self.provenance,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "size_bytes": self.size_bytes,
            "schema_version": self.schema_version,
            "status": self.status,
        }

    def __eq__(self, other):
        if not isinstance(other, BackupRecord):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    def __repr__(self):
        return (
            f"BackupRecord(id={self.id!r}, provenance={self.provenance!r}, "
            f"created_at={self.created_at}, size_bytes={self.size_bytes})"
        )


def apply_metadata(record: BackupRecord, metadata: Optional[dict]) -> BackupRecord:
    """Overlay authoritative object metadata onto a record parsed from its key."""
    if not metadata:
        return record

    provenance = metadata.get(META_PROVENANCE)
    if provenance in PROVENANCES:
        record.provenance = provenance
    if metadata.get(META_SCHEMA_VERSION):
        record.schema_version = metadata[META_SCHEMA_VERSION]
    return record


def record_from_object(info: ObjectInfo) -> BackupRecord:
    record = BackupRecord(
        id=posixpath.basename(info.key),
        provenance=parse_provenance(info.key),
        created_at=info.last_modified,
        size_bytes=info.size or 0,
        key=info.key,
    )
    return apply_metadata(record, info.metadata)


class BackupCatalog:
    """Enumerates backups resident in the object store, newest first."""

    def __init__(
        self,
        store: ObjectStore,
        prefix: str,
        extension: str = ".db",
        scan_limit: int = 1000,
    ):
        self.store = store
        self.prefix = prefix
        self.extension = extension
        self.scan_limit = scan_limit

    def key_for(self, backup_id: str) -> str:
        return f"{self.prefix}{backup_id}"

    @property
    def marker_key(self) -> str:
        return f"{self.prefix}{RESTORE_MARKER_NAME}"

    def list_backups(self, limit: int = 20) -> List[BackupRecord]:
        """
        List catalogued backups, newest first.

        The whole prefix (up to scan_limit objects) is read before truncating
        to ``limit`` because the store returns keys in lexicographic order, not
        by age.

        Args:
            limit: Maximum number of records to return (at least 1)

        Returns:
            Records sorted by created_at descending

        Raises:
            ValueError: if limit is below 1
            BackupStoreError: if the store is unreachable
        """
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")

        objects = self.store.list(self.prefix, max(self.scan_limit, limit))

        records = [
            record_from_object(info)
            for info in objects
            if info.key.endswith(self.extension)
            and info.key != self.marker_key
            and info.last_modified is not None
        ]
        # sorted() is stable, so ties keep the store's order
        records = sorted(records, key=lambda record: record.created_at, reverse=True)

        logger.debug(f"Catalog: {len(records)} backups found under {self.prefix!r}")
        return records[:limit]

    def latest_restored(self) -> Optional[dict]:
        """
        Read the restore marker.

        Returns:
            Dictionary with the restored backup's ``id``, ``key`` and
            ``restored_at``, or None if nothing was restored yet
        """
        if self.store.head(self.marker_key) is None:
            return None

        body = self.store.get(self.marker_key)
        try:
            data = json.loads(body.read().decode("utf-8"))
        except ValueError as e:
            logger.warning(f"Ignoring unreadable restore marker {self.marker_key}: {e}")
            return None
        finally:
            body.close()

        if not isinstance(data, dict) or not data.get("id"):
            return None
        return data

    def write_restore_marker(self, record: BackupRecord, restored_at: datetime) -> None:
        """
        Record ``record`` as the latest restored backup.

        Raises:
            BackupStoreError: if the marker can't be written
        """
        payload = json.dumps(
            {"id": record.id, "key": record.key, "restored_at": restored_at.isoformat()}
        ).encode("utf-8")
        self.store.put(self.marker_key, io.BytesIO(payload), {})

    def describe(self, record: BackupRecord) -> BackupRecord:
        """
        Enrich a record with the object's stored metadata and restore status.

        Listing does not return user metadata, so provenance and schema version
        recorded at write time need one extra request per record.
        """
        info = self.store.head(record.key)
        if info is not None:
            apply_metadata(record, info.metadata)

        marker = self.latest_restored()
        if marker and marker["id"] == record.id:
            record.status = LATEST_RESTORED
        return record

    def get(self, backup_id: str) -> Optional[BackupRecord]:
        """Look up a single backup by id, or None if it doesn't exist."""
        if backup_id == RESTORE_MARKER_NAME:
            return None
        info = self.store.head(self.key_for(backup_id))
        if info is None or info.last_modified is None:
            return None
        return record_from_object(info)
