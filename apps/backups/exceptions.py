"""
Error taxonomy for the backup coordinator.

Every error carries a machine-readable ``kind`` so administrative callers
(management commands, Celery task results) can report a structured error
instead of a bare message.
"""

from typing import Optional


class BackupError(Exception):
    """Base class for all backup coordinator errors."""

    kind = "backup_error"

    def __init__(self, message: str, diagnosis: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.diagnosis = diagnosis

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "message": self.message}
        if self.diagnosis:
            data["diagnosis"] = self.diagnosis
        return data


class BackupConfigurationError(BackupError):
    """Store connection settings are missing or malformed."""

    kind = "configuration"

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("Invalid object store configuration: " + "; ".join(self.problems))


class BackupServiceDisabled(BackupError):
    """The coordinator was disabled at construction and stays disabled."""

    kind = "disabled"


class DatabaseFileNotFound(BackupError):
    """The local database file to snapshot does not exist."""

    kind = "file_not_found"


class BackupLocalIOError(BackupError):
    """Reading or writing the local database file failed."""

    kind = "local_io"


class BackupNotFound(BackupError):
    """No catalogued backup matches the requested id."""

    kind = "not_found"


class BackupStoreError(BackupError):
    """
    A call to the object store failed.

    Attributes:
        operation: Adapter operation that failed (put, get, list, ...)
        key: Object key involved, if any
        code: Structured error code reported by the store (e.g. ``NoSuchBucket``)
    """

    kind = "store_error"

    def __init__(
        self,
        message: str,
        operation: str = "",
        key: Optional[str] = None,
        code: Optional[str] = None,
        diagnosis: Optional[str] = None,
    ):
        super().__init__(message, diagnosis=diagnosis)
        self.operation = operation
        self.key = key
        self.code = code

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["operation"] = self.operation
        if self.key:
            data["key"] = self.key
        if self.code:
            data["code"] = self.code
        return data
