"""
Tests for the snapshot writer and reader.
"""

import io
import os
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from unittest.mock import Mock

import pytest

from apps.backups.catalog import MANUAL, PERIODIC, SHUTDOWN, BackupCatalog
from apps.backups.exceptions import BackupStoreError, DatabaseFileNotFound
from apps.backups.schema import StaticSchemaVersionProvider
from apps.backups.snapshots import SnapshotReader, SnapshotWriter, generate_backup_id


@pytest.fixture
def catalog(store):
    return BackupCatalog(store, prefix="backups/")


@pytest.fixture
def writer(store, catalog, database_file, clock):
    return SnapshotWriter(
        store,
        catalog,
        database_file,
        schema_provider=StaticSchemaVersionProvider("core.0042_add_index"),
        clock=clock,
    )


class TestGenerateBackupId:
    """Test backup id generation."""

    def test_id_format(self):
        created_at = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=dt_timezone.utc)

        assert generate_backup_id(MANUAL, created_at) == "app-manual-2024-01-02T03-04-05.db"

    def test_id_uses_utc(self):
        """Test that aware datetimes in other zones are converted to UTC."""
        tehran = dt_timezone(timedelta(hours=3, minutes=30))
        created_at = datetime(2024, 1, 2, 3, 30, 0, tzinfo=tehran)

        assert generate_backup_id(SHUTDOWN, created_at) == "app-shutdown-2024-01-02T00-00-00.db"

    def test_sequence_suffix(self):
        created_at = datetime(2024, 1, 2, 3, 4, 5, tzinfo=dt_timezone.utc)

        backup_id = generate_backup_id(PERIODIC, created_at, "shop", ".sqlite3", sequence=2)

        assert backup_id == "shop-periodic-2024-01-02T03-04-05-2.sqlite3"


class TestSnapshotWriter:
    """Test snapshot uploads."""

    def test_create_backup_uploads_file(self, writer, store, database_file, now):
        """Test that the whole database file is uploaded with metadata."""
        record = writer.create_backup(MANUAL)

        assert record.id == "app-manual-2024-02-01T12-00-00.db"
        assert record.key == "backups/app-manual-2024-02-01T12-00-00.db"
        assert record.provenance == MANUAL
        assert record.created_at == now
        assert record.size_bytes == database_file.stat().st_size
        assert record.schema_version == "core.0042_add_index"

        stored = store.objects[record.key]
        assert stored["data"] == database_file.read_bytes()
        assert stored["metadata"] == {
            "provenance": "manual",
            "created-at": "2024-02-01T12:00:00+00:00",
            "size-bytes": str(record.size_bytes),
            "schema-version": "core.0042_add_index",
        }

    def test_same_second_backups_get_distinct_ids(self, writer, store):
        """Test that a second backup in the same second does not overwrite the first."""
        first = writer.create_backup(MANUAL)
        second = writer.create_backup(MANUAL)
        third = writer.create_backup(MANUAL)

        assert first.id == "app-manual-2024-02-01T12-00-00.db"
        assert second.id == "app-manual-2024-02-01T12-00-00-2.db"
        assert third.id == "app-manual-2024-02-01T12-00-00-3.db"
        assert len(store.objects) == 3

    def test_unknown_provenance_rejected(self, writer, store):
        with pytest.raises(ValueError):
            writer.create_backup("nightly")

        assert store.calls == []

    def test_missing_database_file(self, writer, store, database_file):
        """Test that a missing file fails before any store call."""
        database_file.unlink()

        with pytest.raises(DatabaseFileNotFound) as exc_info:
            writer.create_backup(MANUAL)

        assert exc_info.value.kind == "file_not_found"
        assert store.calls == []

    def test_upload_failure_propagates(self, writer, store):
        store.fail_on("put")

        with pytest.raises(BackupStoreError):
            writer.create_backup(SHUTDOWN)

    def test_schema_version_falls_back(self, writer):
        """Test that a failing provider doesn't fail the backup."""
        writer.schema_provider = Mock()
        writer.schema_provider.current_version.side_effect = LookupError("no migrations")

        record = writer.create_backup(MANUAL)

        assert record.schema_version == "unknown"

    def test_no_schema_provider(self, writer):
        writer.schema_provider = None
        writer.default_schema_version = "v0"

        assert writer.get_schema_version() == "v0"


class FailingStream(io.BytesIO):
    """Stream that breaks after the first chunk."""

    def read(self, size=-1):
        if self.tell() > 0:
            raise BackupStoreError("connection reset mid-download", operation="get")
        return super().read(4)


class TestSnapshotReader:
    """Test atomic downloads."""

    def test_download_replaces_destination(self, store, catalog, tmp_path):
        store.add("backups/app-manual-a.db", data=b"remote data")
        record = catalog.get("app-manual-a.db")
        destination = tmp_path / "app.db"
        destination.write_bytes(b"old data")

        SnapshotReader(store).download(record, destination)

        assert destination.read_bytes() == b"remote data"
        assert os.listdir(tmp_path) == ["app.db"]

    def test_download_creates_parent_directory(self, store, catalog, tmp_path):
        store.add("backups/app-manual-a.db", data=b"remote data")
        record = catalog.get("app-manual-a.db")
        destination = tmp_path / "data" / "app.db"

        SnapshotReader(store).download(record, destination)

        assert destination.read_bytes() == b"remote data"

    def test_failed_download_leaves_destination_untouched(self, store, catalog, tmp_path):
        """Test that a partial download never replaces the local file."""
        store.add("backups/app-manual-a.db", data=b"remote data")
        record = catalog.get("app-manual-a.db")
        destination = tmp_path / "app.db"
        destination.write_bytes(b"old data")
        store.get = Mock(return_value=FailingStream(b"remote data"))
        before_replace = Mock()

        with pytest.raises(BackupStoreError):
            SnapshotReader(store).download(record, destination, before_replace=before_replace)

        assert destination.read_bytes() == b"old data"
        assert os.listdir(tmp_path) == ["app.db"]
        before_replace.assert_not_called()

    def test_before_replace_called_with_destination(self, store, catalog, tmp_path):
        store.add("backups/app-manual-a.db", data=b"remote data")
        record = catalog.get("app-manual-a.db")
        destination = tmp_path / "app.db"
        seen = []

        SnapshotReader(store).download(
            record, destination, before_replace=lambda path: seen.append(path.exists())
        )

        assert seen == [False]
