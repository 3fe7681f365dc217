"""
Django settings for the database backup coordinator.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-secret-key-change-in-production")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv("DJANGO_DEBUG", "True") == "True"

ALLOWED_HOSTS = os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,web").split(",")

# Application definition
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # Local apps
    "apps.backups",
]

# Primary embedded database. This is the single file the backup coordinator
# snapshots to object storage and restores from it.
BACKUP_DATABASE_PATH = Path(os.getenv("BACKUP_DATABASE_PATH", str(BASE_DIR / "app.db")))

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BACKUP_DATABASE_PATH,
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Celery Configuration
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_TASK_SOFT_TIME_LIMIT = 25 * 60  # 25 minutes
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_WORKER_MAX_TASKS_PER_CHILD = 1000

# Logging Configuration with JSON formatting
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
        },
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "level": "INFO",
            "class": "logging.StreamHandler",
            "formatter": "verbose" if DEBUG else "json",
        },
        "file": {
            "level": "INFO",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": BASE_DIR / "logs" / "backups.log",
            "maxBytes": 1024 * 1024 * 10,  # 10 MB
            "backupCount": 10,
            "formatter": "json",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": os.getenv("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": "INFO",
            "propagate": False,
        },
        "apps.backups": {
            "handlers": ["console", "file"],
            "level": os.getenv("BACKUP_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")),
            "propagate": False,
        },
        # botocore logs every retry and credential lookup at DEBUG/INFO
        "botocore": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}

# Create logs directory if it doesn't exist
LOGS_DIR = BASE_DIR / "logs"
LOGS_DIR.mkdir(exist_ok=True)

# Backup Coordinator Configuration
BACKUP_ENABLED = os.getenv("BACKUP_ENABLED", "True").lower() == "true"
BACKUP_FILE_PREFIX = os.getenv("BACKUP_FILE_PREFIX", "app")
BACKUP_FILE_EXTENSION = os.getenv("BACKUP_FILE_EXTENSION", ".db")
BACKUP_RETENTION_DAYS = int(os.getenv("BACKUP_RETENTION_DAYS", "30"))
BACKUP_CATALOG_SCAN_LIMIT = int(os.getenv("BACKUP_CATALOG_SCAN_LIMIT", "1000"))
BACKUP_DEFAULT_SCHEMA_VERSION = os.getenv("BACKUP_DEFAULT_SCHEMA_VERSION", "unknown")
BACKUP_SCHEMA_VERSION_PROVIDER = os.getenv(
    "BACKUP_SCHEMA_VERSION_PROVIDER", "apps.backups.schema.MigrationSchemaVersionProvider"
)
BACKUP_KEEP_PRE_RESTORE_COPY = os.getenv("BACKUP_KEEP_PRE_RESTORE_COPY", "True").lower() == "true"
# Number of pre-restore copies kept next to the database file
BACKUP_PRE_RESTORE_COPIES_KEEP = int(os.getenv("BACKUP_PRE_RESTORE_COPIES_KEEP", "3"))
BACKUP_PERSIST_RESTORE_STATUS = (
    os.getenv("BACKUP_PERSIST_RESTORE_STATUS", "True").lower() == "true"
)

# Connection health probe
BACKUP_HEALTH_MAX_ATTEMPTS = int(os.getenv("BACKUP_HEALTH_MAX_ATTEMPTS", "3"))
BACKUP_HEALTH_BASE_DELAY = float(os.getenv("BACKUP_HEALTH_BASE_DELAY", "1.0"))
# Extra diagnosis rules, evaluated before the built-in table
BACKUP_CONNECTION_DIAGNOSES = []

# Periodic backups: "thread" runs an in-process timer, "celery" registers the
# cycle on Celery beat
PERIODIC_BACKUP_ENABLED = os.getenv("PERIODIC_BACKUP_ENABLED", "False").lower() == "true"
PERIODIC_BACKUP_INTERVAL_HOURS = float(os.getenv("PERIODIC_BACKUP_INTERVAL_HOURS", "24"))
BACKUP_SCHEDULER_BACKEND = os.getenv("BACKUP_SCHEDULER_BACKEND", "thread")

# Process lifecycle hooks (restore on startup, backup on shutdown)
BACKUP_LIFECYCLE_HOOKS_ENABLED = (
    os.getenv("BACKUP_LIFECYCLE_HOOKS_ENABLED", "False").lower() == "true"
)
BACKUP_RESTORE_ON_STARTUP = os.getenv("BACKUP_RESTORE_ON_STARTUP", "False").lower() == "true"
BACKUP_ON_SHUTDOWN = os.getenv("BACKUP_ON_SHUTDOWN", "True").lower() == "true"

# S3-compatible object storage (Cloudflare R2 by default)
STORE_ACCESS_KEY_ID = os.getenv("STORE_ACCESS_KEY_ID", "")
STORE_SECRET_ACCESS_KEY = os.getenv("STORE_SECRET_ACCESS_KEY", "")
STORE_BUCKET_NAME = os.getenv("STORE_BUCKET_NAME", "")
STORE_ENDPOINT = os.getenv("STORE_ENDPOINT", "")
STORE_REGION = os.getenv("STORE_REGION", "auto")  # R2 uses 'auto' for region
STORE_BACKUP_PATH = os.getenv("STORE_BACKUP_PATH", "backups/")
STORE_REQUEST_TIMEOUT = int(os.getenv("STORE_REQUEST_TIMEOUT", "60"))
STORE_MAX_POOL_CONNECTIONS = int(os.getenv("STORE_MAX_POOL_CONNECTIONS", "50"))
