"""
Management command to test connectivity to the backup bucket.

Retries with exponential backoff and prints a diagnosis and remediation hint
when every attempt fails.
"""

from django.core.management.base import BaseCommand, CommandError

from apps.backups.services import get_backup_coordinator


class Command(BaseCommand):
    help = "Test the connection to the backup object store"

    def handle(self, *args, **options):
        coordinator = get_backup_coordinator()

        if not coordinator.is_enabled:
            raise CommandError(f"Backup service is disabled: {coordinator.disabled_reason}")

        self.stdout.write("Testing object store connection...")

        if coordinator.test_connection():
            self.stdout.write(self.style.SUCCESS("Connection OK"))
            return

        diagnosis = coordinator.last_diagnosis or {}
        self.stdout.write(self.style.ERROR(f"Diagnosis: {diagnosis.get('category', 'unknown')}"))
        self.stdout.write(f"Last error: {diagnosis.get('error', '')}")
        self.stdout.write(f"Remediation: {diagnosis.get('remediation', '')}")
        raise CommandError("Connection test failed")
