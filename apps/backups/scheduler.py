"""
In-process periodic backup scheduler.

Each coordinator owns at most one scheduler thread. A cycle runs a periodic
backup followed by a retention cleanup; failures are logged and swallowed so
a bad cycle never stops the timer. Stopping prevents future cycles but does
not interrupt one already running.
"""

import logging
import threading
from typing import Optional

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_HOURS = 24


def get_periodic_settings():
    """
    Read the periodic backup settings.

    Returns:
        Tuple of (enabled, interval_hours)
    """
    enabled = bool(getattr(settings, "PERIODIC_BACKUP_ENABLED", False))
    interval_hours = getattr(settings, "PERIODIC_BACKUP_INTERVAL_HOURS", DEFAULT_INTERVAL_HOURS)
    try:
        interval_hours = float(interval_hours)
    except (TypeError, ValueError):
        interval_hours = DEFAULT_INTERVAL_HOURS
    if interval_hours <= 0:
        interval_hours = DEFAULT_INTERVAL_HOURS
    return enabled, interval_hours


class PeriodicBackupScheduler:
    """Recurring timer that runs backup + cleanup cycles for one coordinator."""

    def __init__(self, coordinator):
        self.coordinator = coordinator
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._lock = threading.Lock()
        self.interval_hours: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """
        Start the recurring timer.

        Returns:
            True if a timer was started, False if the coordinator is disabled,
            periodic backups are off, or a timer is already active
        """
        if not self.coordinator.is_enabled:
            logger.info("Periodic backups disabled - backup service not enabled")
            return False

        enabled, interval_hours = get_periodic_settings()
        if not enabled:
            logger.info("Periodic backups disabled via configuration")
            return False

        with self._lock:
            if self.is_running:
                logger.debug("Periodic backup scheduler already running")
                return False

            self.interval_hours = interval_hours
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, interval_hours * 60 * 60),
                name="periodic-backup-scheduler",
                daemon=True,
            )
            self._thread.start()

        logger.info(f"Started periodic backup scheduler (every {interval_hours} hours)")
        return True

    def stop(self) -> None:
        """Cancel future cycles. Safe to call when not running."""
        with self._lock:
            if self._stop_event is None:
                return
            self._stop_event.set()
            self._stop_event = None
            self._thread = None

        logger.info("Periodic backup scheduler stopped")

    def _run(self, stop_event: threading.Event, interval_seconds: float) -> None:
        while not stop_event.wait(interval_seconds):
            self.run_cycle()

    def run_cycle(self) -> None:
        """Run one periodic backup followed by cleanup. Never raises."""
        try:
            record = self.coordinator.create_backup("periodic")
            logger.info(f"Periodic backup completed: {record.id}")
            self.coordinator.cleanup()
        except Exception as e:
            logger.error(f"Periodic backup failed: {e}", exc_info=True)
