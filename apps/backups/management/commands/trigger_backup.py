"""
Management command to trigger backups manually.

This command is used by:
- CI/CD pipeline before production deployments
- Manual backup operations
- Process supervisors taking a backup before stopping the application
"""

from django.core.management.base import BaseCommand, CommandError

from apps.backups.catalog import MANUAL, PROVENANCES
from apps.backups.exceptions import BackupError
from apps.backups.services import get_backup_coordinator
from apps.backups.tasks import create_backup


class Command(BaseCommand):
    help = "Trigger a database backup to object storage"

    def add_arguments(self, parser):
        parser.add_argument(
            "--type",
            type=str,
            choices=PROVENANCES,
            default=MANUAL,
            help="Provenance recorded on the backup (manual, shutdown or periodic)",
        )
        parser.add_argument(
            "--async",
            action="store_true",
            help="Run backup asynchronously using Celery",
        )

    def handle(self, *args, **options):
        provenance = options["type"]
        run_async = options.get("async", False)

        self.stdout.write(f"Triggering {provenance} backup...")

        if run_async:
            task = create_backup.delay(provenance)
            self.stdout.write(self.style.SUCCESS(f"Backup task queued: {task.id}"))
            return

        try:
            record = get_backup_coordinator().create_backup(provenance)
        except BackupError as e:
            raise CommandError(f"Backup failed ({e.kind}): {e.message}")

        self.stdout.write(self.style.SUCCESS(f"Backup completed: {record.id}"))
        self.stdout.write(f"  Size: {record.get_size_mb()} MB")
        self.stdout.write(f"  Schema version: {record.schema_version}")
