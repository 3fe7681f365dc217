"""
Database backup coordinator.

This app snapshots the application's embedded database file to an
S3-compatible bucket (Cloudflare R2 by default) and provides:
- Shutdown, manual and periodic backups
- Smart restore of the latest backup (never overwrites a newer local file)
- Retention-driven cleanup
- Connection health probing with failure diagnosis
"""
