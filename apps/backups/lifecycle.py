"""
Process lifecycle hooks for the backup coordinator.

On startup the hooks optionally restore the latest backup and start the
in-process periodic scheduler. On SIGTERM or interpreter exit they stop the
scheduler and take a shutdown backup, at most once per process. Nothing here
may raise: a failure during startup must not prevent the application from
booting, and a failure at exit must not block shutdown.

Python's default SIGTERM action kills the process without running atexit
callbacks, so install() also handles SIGTERM when nothing else (a process
manager such as gunicorn or celery) has claimed the signal.
"""

import atexit
import logging
import signal
import sys
import threading

from django.conf import settings

from .services import get_backup_coordinator

logger = logging.getLogger(__name__)

_installed = False
_shutdown_done = False


def on_startup() -> None:
    coordinator = get_backup_coordinator()
    if not coordinator.is_enabled:
        logger.info(f"Backup service disabled: {coordinator.disabled_reason}")
        return

    if getattr(settings, "BACKUP_RESTORE_ON_STARTUP", False):
        try:
            record = coordinator.restore_latest(force=False)
            if record:
                logger.info(f"Restored backup {record.id} on startup")
        except Exception as e:
            logger.error(f"Startup restore failed: {e}", exc_info=True)

    if getattr(settings, "BACKUP_SCHEDULER_BACKEND", "thread") == "thread":
        coordinator.start_periodic_backups()


def on_shutdown() -> None:
    global _shutdown_done
    if _shutdown_done:
        return
    _shutdown_done = True

    try:
        coordinator = get_backup_coordinator()
        coordinator.stop_periodic_backups()

        if getattr(settings, "BACKUP_ON_SHUTDOWN", True):
            record = coordinator.backup_on_shutdown()
            if record:
                logger.info(f"Shutdown backup {record.id} completed")
    except Exception as e:
        logger.error(f"Backup shutdown hook failed: {e}", exc_info=True)


def _handle_sigterm(signum, frame) -> None:
    logger.info("SIGTERM received, running backup shutdown hook")
    on_shutdown()
    # Same status a shell reports for a process killed by the signal
    sys.exit(128 + signum)


def install_sigterm_handler() -> bool:
    """
    Run the shutdown hook on SIGTERM.

    Signal handlers can only be set from the main thread, and an existing
    handler is left alone.

    Returns:
        True if the handler was installed
    """
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not in the main thread, SIGTERM handler not installed")
        return False

    current = signal.getsignal(signal.SIGTERM)
    if current not in (signal.SIG_DFL, None):
        logger.info("SIGTERM is already handled, shutdown backup relies on atexit")
        return False

    signal.signal(signal.SIGTERM, _handle_sigterm)
    return True


def install() -> bool:
    """
    Run the startup hook and register the shutdown hook, once per process.

    Returns:
        True if the hooks were installed by this call
    """
    global _installed
    if _installed:
        return False
    _installed = True

    on_startup()
    atexit.register(on_shutdown)
    install_sigterm_handler()
    return True
