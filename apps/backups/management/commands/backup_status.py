"""
Management command to print the backup service status.
"""

import json

from django.core.management.base import BaseCommand

from apps.backups.services import get_backup_coordinator


class Command(BaseCommand):
    help = "Show backup service status"

    def add_arguments(self, parser):
        parser.add_argument("--json", action="store_true", help="Print JSON")

    def handle(self, *args, **options):
        status = get_backup_coordinator().get_status()

        if options["json"]:
            self.stdout.write(json.dumps(status, indent=2, default=str))
            return

        if not status["enabled"]:
            self.stdout.write(self.style.WARNING("Backup service: disabled"))
            if status.get("disabled_reason"):
                self.stdout.write(f"  Reason: {status['disabled_reason']}")
            return

        self.stdout.write(self.style.SUCCESS("Backup service: enabled"))
        healthy = status["connection_healthy"]
        self.stdout.write(f"  Connection: {'healthy' if healthy else 'unhealthy'}")
        if status.get("diagnosis"):
            self.stdout.write(f"  Diagnosis: {status['diagnosis']['category']}")
            self.stdout.write(f"  Remediation: {status['diagnosis']['remediation']}")
        self.stdout.write(f"  Recent backups: {status['backup_count']}")
        self.stdout.write(f"  Last backup: {status['last_backup_timestamp'] or 'never'}")
        if status["periodic_enabled"]:
            self.stdout.write(
                f"  Periodic backups: every {status['periodic_interval_hours']} hours"
            )
        else:
            self.stdout.write("  Periodic backups: disabled")
