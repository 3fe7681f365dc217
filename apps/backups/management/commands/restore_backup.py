"""
Management command to restore the database from object storage.

Without arguments the latest backup is restored only when it is not older
than the local database file. ``--force`` skips the timestamp comparison and
``--backup-id`` restores one specific backup.
"""

from django.core.management.base import BaseCommand, CommandError

from apps.backups.exceptions import BackupError
from apps.backups.services import get_backup_coordinator


class Command(BaseCommand):
    help = "Restore the local database from a backup"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Restore the latest backup even if the local database is newer",
        )
        parser.add_argument(
            "--backup-id",
            type=str,
            help="Restore this backup instead of the latest one",
        )

    def handle(self, *args, **options):
        coordinator = get_backup_coordinator()
        backup_id = options.get("backup_id")

        try:
            if backup_id:
                record = coordinator.restore_backup(backup_id)
            else:
                record = coordinator.restore_latest(force=options["force"])
        except BackupError as e:
            raise CommandError(f"Restore failed ({e.kind}): {e.message}")

        if record is None:
            self.stdout.write("Nothing restored: no backups found or local database is newer")
            return

        self.stdout.write(self.style.SUCCESS(f"Restored backup {record.id}"))
        self.stdout.write(f"  Created: {record.created_at.isoformat()}")
        self.stdout.write(f"  Type: {record.provenance}")
