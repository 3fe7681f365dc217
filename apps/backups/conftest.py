"""
Pytest configuration and fixtures for backup tests.
"""

import io
from datetime import datetime
from datetime import timezone as dt_timezone

import pytest

from apps.backups.conf import ConnectionConfig
from apps.backups.exceptions import BackupStoreError
from apps.backups.schema import StaticSchemaVersionProvider
from apps.backups.services import BackupCoordinator
from apps.backups.storage import ObjectInfo, ObjectStore

FIXED_NOW = datetime(2024, 2, 1, 12, 0, 0, tzinfo=dt_timezone.utc)


class InMemoryObjectStore(ObjectStore):
    """
    Object store kept in a dict, for tests.

    Objects get their last-modified time from ``clock`` when uploaded. Calls are
    recorded in ``calls`` as (operation, key) tuples, and ``fail_on`` makes an
    operation raise BackupStoreError.
    """

    def __init__(self, clock=None):
        self.objects = {}
        self.calls = []
        self.failures = {}
        self.clock = clock or (lambda: FIXED_NOW)

    def add(self, key, data=b"snapshot", last_modified=None, metadata=None):
        self.objects[key] = {
            "data": data,
            "last_modified": last_modified or self.clock(),
            "metadata": dict(metadata or {}),
        }

    def fail_on(self, operation, key=None, error=None):
        self.failures[(operation, key)] = error or BackupStoreError(
            f"{operation} failed", operation=operation, key=key
        )

    def _check(self, operation, key=None):
        self.calls.append((operation, key))
        error = self.failures.get((operation, key)) or self.failures.get((operation, None))
        if error is not None:
            raise error

    def put(self, key, stream, metadata):
        self._check("put", key)
        self.add(key, stream.read(), metadata=metadata)

    def get(self, key):
        self._check("get", key)
        if key not in self.objects:
            raise BackupStoreError(f"get {key} failed: NoSuchKey", "get", key, "NoSuchKey")
        return io.BytesIO(self.objects[key]["data"])

    def list(self, prefix, max_keys):
        self._check("list", prefix)
        return [
            ObjectInfo(key, len(obj["data"]), obj["last_modified"])
            for key, obj in sorted(self.objects.items())
            if key.startswith(prefix)
        ][:max_keys]

    def delete(self, key):
        self._check("delete", key)
        self.objects.pop(key, None)

    def head(self, key):
        self._check("head", key)
        obj = self.objects.get(key)
        if obj is None:
            return None
        return ObjectInfo(key, len(obj["data"]), obj["last_modified"], dict(obj["metadata"]))


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock(now):
    return lambda: now


@pytest.fixture
def store(clock):
    return InMemoryObjectStore(clock=clock)


@pytest.fixture
def connection_config():
    """A configuration that passes validation."""
    return ConnectionConfig(
        endpoint="https://0123456789abcdef.r2.cloudflarestorage.com",
        bucket="db-backups",
        access_key_id="AKIA4QWERTYUIOP12345",
        secret_access_key="k9Jd2mQp7Lw3Zx8Rt5Vb1Nc6Hy4Fg0Ts2Ae7Ui3Q",
        path_prefix="backups/",
    )


@pytest.fixture
def database_file(tmp_path):
    path = tmp_path / "app.db"
    path.write_bytes(b"SQLite format 3\x00local data")
    return path


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def coordinator(settings, connection_config, store, database_file, clock, sleeps):
    """Enabled coordinator backed by the in-memory store."""
    settings.BACKUP_ENABLED = True
    settings.PERIODIC_BACKUP_ENABLED = False
    settings.BACKUP_RETENTION_DAYS = 30
    coordinator = BackupCoordinator(
        config=connection_config,
        store=store,
        database_path=database_file,
        schema_provider=StaticSchemaVersionProvider("core.0042_add_index"),
        clock=clock,
        sleep=sleeps.append,
    )
    yield coordinator
    coordinator.stop_periodic_backups()
