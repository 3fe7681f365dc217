"""
Management command to delete backups older than the retention window.
"""

from django.core.management.base import BaseCommand, CommandError

from apps.backups.exceptions import BackupError
from apps.backups.services import get_backup_coordinator
from apps.backups.tasks import cleanup_old_backups


class Command(BaseCommand):
    help = "Delete backups older than BACKUP_RETENTION_DAYS"

    def add_arguments(self, parser):
        parser.add_argument(
            "--async",
            action="store_true",
            help="Run cleanup asynchronously using Celery",
        )

    def handle(self, *args, **options):
        if options.get("async", False):
            task = cleanup_old_backups.delay()
            self.stdout.write(self.style.SUCCESS(f"Cleanup task queued: {task.id}"))
            return

        try:
            stats = get_backup_coordinator().cleanup()
        except BackupError as e:
            raise CommandError(f"Cleanup failed ({e.kind}): {e.message}")

        self.stdout.write(
            f"Retention {stats['retention_days']} days (cutoff {stats['cutoff']}): "
            f"{stats['scanned']} scanned, {stats['deleted']} deleted, {stats['failed']} failed"
        )
        for error in stats["errors"]:
            self.stdout.write(self.style.WARNING(f"  {error}"))

        if stats["errors"]:
            self.stdout.write(self.style.WARNING("Cleanup completed with errors"))
        else:
            self.stdout.write(self.style.SUCCESS("Cleanup completed"))
