"""
Object store connection configuration.

The configuration is read from Django settings once, when the coordinator is
built, and validated before any client is created. A configuration that fails
validation never produces a client: the coordinator stays disabled for the
lifetime of the process instead of surfacing bad credentials later as opaque
TLS handshake failures.
"""

from typing import List, Optional
from urllib.parse import urlparse

from django.conf import settings

from .exceptions import BackupConfigurationError

REQUIRED_SETTINGS = [
    "STORE_ACCESS_KEY_ID",
    "STORE_SECRET_ACCESS_KEY",
    "STORE_BUCKET_NAME",
    "STORE_ENDPOINT",
]

# Lowercase markers of values copied from .env templates
PLACEHOLDER_MARKERS = (
    "change_this",
    "change-this",
    "change-in-production",
    "changeme",
    "your_",
    "your-",
    "placeholder",
    "<",
    ">",
    "xxxx",
)

MIN_ACCESS_KEY_LENGTH = 16
MIN_SECRET_KEY_LENGTH = 32

DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_MAX_POOL_CONNECTIONS = 50


def normalize_prefix(path_prefix: Optional[str]) -> str:
    """Strip leading slashes and make sure a non-empty prefix ends with '/'."""
    prefix = (path_prefix or "").strip().lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def is_placeholder(value: str) -> bool:
    lowered = value.lower()
    return any(marker in lowered for marker in PLACEHOLDER_MARKERS)


class ConnectionConfig:
    """Connection settings for the S3-compatible backup bucket."""

    def __init__(
        self,
        endpoint: str = "",
        bucket: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        region: str = "auto",
        path_prefix: str = "backups/",
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
        max_pool_connections: int = DEFAULT_MAX_POOL_CONNECTIONS,
    ):
        self.endpoint = (endpoint or "").strip()
        self.bucket = (bucket or "").strip()
        self.access_key_id = (access_key_id or "").strip()
        self.secret_access_key = (secret_access_key or "").strip()
        self.region = region or "auto"
        self.path_prefix = normalize_prefix(path_prefix)
        self.request_timeout = request_timeout
        self.max_pool_connections = max_pool_connections

    @classmethod
    def from_settings(cls) -> "ConnectionConfig":
        """Build the configuration from Django settings."""
        return cls(
            endpoint=getattr(settings, "STORE_ENDPOINT", ""),
            bucket=getattr(settings, "STORE_BUCKET_NAME", ""),
            access_key_id=getattr(settings, "STORE_ACCESS_KEY_ID", ""),
            secret_access_key=getattr(settings, "STORE_SECRET_ACCESS_KEY", ""),
            region=getattr(settings, "STORE_REGION", "auto"),
            path_prefix=getattr(settings, "STORE_BACKUP_PATH", "backups/"),
            request_timeout=getattr(settings, "STORE_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            max_pool_connections=getattr(
                settings, "STORE_MAX_POOL_CONNECTIONS", DEFAULT_MAX_POOL_CONNECTIONS
            ),
        )

    def problems(self) -> List[str]:  # noqa: C901
        """
        Return every validation problem found in this configuration.

        Secret values are never echoed back in the messages.
        """
        problems = []
        values = {
            "STORE_ACCESS_KEY_ID": self.access_key_id,
            "STORE_SECRET_ACCESS_KEY": self.secret_access_key,
            "STORE_BUCKET_NAME": self.bucket,
            "STORE_ENDPOINT": self.endpoint,
        }

        missing = [name for name in REQUIRED_SETTINGS if not values[name]]
        if missing:
            problems.append(f"Missing settings: {', '.join(missing)}")

        for name, value in values.items():
            if value and is_placeholder(value):
                problems.append(f"{name} contains a placeholder value")

        if self.access_key_id and len(self.access_key_id) < MIN_ACCESS_KEY_LENGTH:
            problems.append(
                f"STORE_ACCESS_KEY_ID is too short (minimum {MIN_ACCESS_KEY_LENGTH} characters)"
            )
        if self.secret_access_key and len(self.secret_access_key) < MIN_SECRET_KEY_LENGTH:
            problems.append(
                f"STORE_SECRET_ACCESS_KEY is too short (minimum {MIN_SECRET_KEY_LENGTH} characters)"
            )

        if self.endpoint:
            parsed = urlparse(self.endpoint)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                problems.append("STORE_ENDPOINT must be an absolute http:// or https:// URL")

        if self.request_timeout is None or self.request_timeout <= 0:
            problems.append("STORE_REQUEST_TIMEOUT must be a positive number of seconds")
        if self.max_pool_connections is None or self.max_pool_connections <= 0:
            problems.append("STORE_MAX_POOL_CONNECTIONS must be positive")

        return problems

    def validate(self) -> None:
        """
        Raise BackupConfigurationError if the configuration is unusable.

        Raises:
            BackupConfigurationError: listing every problem found
        """
        problems = self.problems()
        if problems:
            raise BackupConfigurationError(problems)

    def __repr__(self):
        return (
            f"ConnectionConfig(endpoint={self.endpoint!r}, bucket={self.bucket!r}, "
            f"region={self.region!r}, path_prefix={self.path_prefix!r})"
        )
