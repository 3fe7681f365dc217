"""
Management command to delete one backup from object storage.
"""

from django.core.management.base import BaseCommand, CommandError

from apps.backups.exceptions import BackupError
from apps.backups.services import get_backup_coordinator


class Command(BaseCommand):
    help = "Delete a backup by id"

    def add_arguments(self, parser):
        parser.add_argument("backup_id", type=str, help="Id of the backup to delete")

    def handle(self, *args, **options):
        try:
            record = get_backup_coordinator().delete_backup(options["backup_id"])
        except BackupError as e:
            raise CommandError(f"Delete failed ({e.kind}): {e.message}")

        self.stdout.write(self.style.SUCCESS(f"Deleted backup {record.id}"))
