"""
Management command to list backups resident in object storage.
"""

import argparse
import json

from django.core.management.base import BaseCommand, CommandError

from apps.backups.exceptions import BackupError
from apps.backups.services import get_backup_coordinator


def positive_int(value):
    limit = int(value)
    if limit < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {limit}")
    return limit


class Command(BaseCommand):
    help = "List backups, newest first"

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit", type=positive_int, default=20, help="Maximum backups to list"
        )
        parser.add_argument(
            "--details",
            action="store_true",
            help="Read stored metadata (schema version, restore status) for each backup",
        )
        parser.add_argument("--json", action="store_true", help="Print JSON")

    def handle(self, *args, **options):
        coordinator = get_backup_coordinator()

        try:
            backups = coordinator.list_backups(options["limit"])
            if options["details"]:
                backups = [coordinator.describe_backup(record) for record in backups]
        except BackupError as e:
            raise CommandError(f"Listing failed ({e.kind}): {e.message}")

        if options["json"]:
            self.stdout.write(json.dumps([record.to_dict() for record in backups], indent=2))
            return

        if not backups:
            self.stdout.write("No backups found")
            return

        for record in backups:
            line = (
                f"{record.created_at.isoformat()}  {record.provenance:<8}  "
                f"{record.get_size_mb():>10.2f} MB  {record.id}"
            )
            if record.status:
                line += f"  [{record.status}]"
            self.stdout.write(line)

        self.stdout.write(f"Found {len(backups)} backups")
