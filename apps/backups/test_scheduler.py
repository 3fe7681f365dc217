"""
Tests for the in-process periodic backup scheduler.
"""

import time
from unittest.mock import Mock

import pytest

from apps.backups.exceptions import BackupStoreError
from apps.backups.scheduler import PeriodicBackupScheduler, get_periodic_settings


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return False


class TestGetPeriodicSettings:
    """Test reading the periodic backup settings."""

    def test_defaults_when_invalid(self, settings):
        settings.PERIODIC_BACKUP_ENABLED = True
        settings.PERIODIC_BACKUP_INTERVAL_HOURS = "often"

        assert get_periodic_settings() == (True, 24)

    def test_non_positive_interval(self, settings):
        settings.PERIODIC_BACKUP_ENABLED = False
        settings.PERIODIC_BACKUP_INTERVAL_HOURS = 0

        assert get_periodic_settings() == (False, 24)

    def test_fractional_hours(self, settings):
        settings.PERIODIC_BACKUP_ENABLED = True
        settings.PERIODIC_BACKUP_INTERVAL_HOURS = "0.5"

        assert get_periodic_settings() == (True, 0.5)


class TestPeriodicBackupScheduler:
    """Test start/stop semantics and cycles."""

    def test_start_when_disabled_in_settings(self, coordinator):
        assert coordinator.start_periodic_backups() is False
        assert coordinator.scheduler.is_running is False

    def test_start_and_stop(self, settings, coordinator):
        settings.PERIODIC_BACKUP_ENABLED = True
        settings.PERIODIC_BACKUP_INTERVAL_HOURS = 24

        assert coordinator.start_periodic_backups() is True
        assert coordinator.scheduler.is_running is True
        assert coordinator.scheduler.interval_hours == 24

        coordinator.stop_periodic_backups()

        assert coordinator.scheduler.is_running is False

    def test_second_start_is_rejected(self, settings, coordinator):
        """Test that at most one timer is active per coordinator."""
        settings.PERIODIC_BACKUP_ENABLED = True

        assert coordinator.start_periodic_backups() is True
        assert coordinator.start_periodic_backups() is False

    def test_stop_without_start(self, coordinator):
        coordinator.stop_periodic_backups()
        coordinator.stop_periodic_backups()

        assert coordinator.scheduler.is_running is False

    def test_restart_after_stop(self, settings, coordinator):
        settings.PERIODIC_BACKUP_ENABLED = True

        coordinator.start_periodic_backups()
        coordinator.stop_periodic_backups()

        assert coordinator.start_periodic_backups() is True

    def test_disabled_coordinator_never_starts(self, settings):
        settings.PERIODIC_BACKUP_ENABLED = True
        coordinator = Mock(is_enabled=False)

        assert PeriodicBackupScheduler(coordinator).start() is False

    def test_timer_runs_cycles(self, settings, coordinator, store):
        """Test that the timer takes periodic backups."""
        settings.PERIODIC_BACKUP_ENABLED = True
        settings.PERIODIC_BACKUP_INTERVAL_HOURS = 0.00001

        coordinator.start_periodic_backups()
        try:
            assert wait_for(lambda: any("-periodic-" in key for key in store.objects))
        finally:
            coordinator.stop_periodic_backups()


class TestRunCycle:
    """Test a single backup + cleanup cycle."""

    def test_cycle_backs_up_then_cleans(self):
        coordinator = Mock()

        PeriodicBackupScheduler(coordinator).run_cycle()

        coordinator.create_backup.assert_called_once_with("periodic")
        coordinator.cleanup.assert_called_once_with()

    def test_failed_backup_is_swallowed(self):
        """Test that a failed cycle never raises into the timer thread."""
        coordinator = Mock()
        coordinator.create_backup.side_effect = BackupStoreError("put failed")

        PeriodicBackupScheduler(coordinator).run_cycle()

        coordinator.cleanup.assert_not_called()

    def test_cycle_against_store(self, coordinator, store):
        coordinator.run_periodic_cycle()

        assert list(store.objects) == ["backups/app-periodic-2024-02-01T12-00-00.db"]


@pytest.mark.parametrize("enabled", [True, False])
def test_status_reports_scheduler(settings, coordinator, enabled):
    settings.PERIODIC_BACKUP_ENABLED = enabled
    coordinator.start_periodic_backups()

    status = coordinator.get_status()

    assert status["periodic_enabled"] is enabled
    assert status["scheduler_running"] is enabled
