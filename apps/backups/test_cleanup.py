"""
Tests for backup retention cleanup.

The sweeper deletes every backup created before now - BACKUP_RETENTION_DAYS
and keeps everything else. Deletion failures are isolated per backup.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

import pytest

from apps.backups.catalog import BackupCatalog
from apps.backups.retention import RetentionSweeper, get_retention_days


def utc(year, month, day):
    return datetime(year, month, day, tzinfo=dt_timezone.utc)


@pytest.fixture
def sweeper(store, clock):
    return RetentionSweeper(store, BackupCatalog(store, prefix="backups/"), clock=clock)


class TestRetentionSweeper:
    """Test retention cleanup."""

    def test_only_expired_backups_deleted(self, settings, store, sweeper):
        """Retention 30 days at 2024-02-01: the December backup goes, January stays."""
        settings.BACKUP_RETENTION_DAYS = 30
        store.add("backups/app-periodic-2023-12-01T00-00-00.db", last_modified=utc(2023, 12, 1))
        store.add("backups/app-periodic-2024-01-25T00-00-00.db", last_modified=utc(2024, 1, 25))

        stats = sweeper.sweep()

        assert stats["deleted_ids"] == ["app-periodic-2023-12-01T00-00-00.db"]
        assert stats["deleted"] == 1
        assert stats["scanned"] == 2
        assert list(store.objects) == ["backups/app-periodic-2024-01-25T00-00-00.db"]

    def test_cutoff_boundary(self, settings, store, sweeper, now):
        """Test that a backup exactly at the cutoff is kept."""
        settings.BACKUP_RETENTION_DAYS = 7
        cutoff = now - timedelta(days=7)
        store.add("backups/app-manual-at-cutoff.db", last_modified=cutoff)
        store.add(
            "backups/app-manual-before-cutoff.db", last_modified=cutoff - timedelta(seconds=1)
        )

        stats = sweeper.sweep()

        assert stats["deleted_ids"] == ["app-manual-before-cutoff.db"]
        assert stats["cutoff"] == cutoff.isoformat()
        assert "backups/app-manual-at-cutoff.db" in store.objects

    def test_nothing_to_delete(self, settings, store, sweeper):
        settings.BACKUP_RETENTION_DAYS = 30
        store.add("backups/app-manual-recent.db", last_modified=utc(2024, 1, 31))

        stats = sweeper.sweep()

        assert stats["deleted"] == 0
        assert not any(call[0] == "delete" for call in store.calls)

    def test_deletion_failure_isolated(self, settings, store, sweeper):
        """Test that one failed deletion doesn't stop the others."""
        settings.BACKUP_RETENTION_DAYS = 30
        store.add("backups/app-manual-a.db", last_modified=utc(2023, 11, 1))
        store.add("backups/app-manual-b.db", last_modified=utc(2023, 11, 2))
        store.add("backups/app-manual-c.db", last_modified=utc(2023, 11, 3))
        store.fail_on("delete", "backups/app-manual-b.db")

        stats = sweeper.sweep()

        assert stats["deleted"] == 2
        assert stats["failed"] == 1
        assert sorted(stats["deleted_ids"]) == ["app-manual-a.db", "app-manual-c.db"]
        assert "app-manual-b.db" in stats["errors"][0]
        assert list(store.objects) == ["backups/app-manual-b.db"]

    def test_list_failure_reported(self, store, sweeper):
        store.fail_on("list")

        stats = sweeper.sweep()

        assert stats["scanned"] == 0
        assert len(stats["errors"]) == 1

    def test_zero_retention_deletes_everything_older_than_now(self, settings, store, sweeper, now):
        settings.BACKUP_RETENTION_DAYS = 0
        store.add("backups/app-manual-old.db", last_modified=now - timedelta(minutes=1))
        store.add("backups/app-manual-now.db", last_modified=now)

        stats = sweeper.sweep()

        assert stats["deleted_ids"] == ["app-manual-old.db"]


class TestGetRetentionDays:
    """Test reading the retention window."""

    def test_reads_setting(self, settings):
        settings.BACKUP_RETENTION_DAYS = 14

        assert get_retention_days() == 14

    @pytest.mark.parametrize("value", ["abc", None, -5])
    def test_invalid_values_fall_back(self, settings, value):
        settings.BACKUP_RETENTION_DAYS = value

        assert get_retention_days() == 30
