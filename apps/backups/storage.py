"""
Object store adapter for the backup coordinator.

This module provides a thin abstraction over an S3-compatible object store
(Cloudflare R2 by default):
1. ObjectStore - common interface (put, get, list, delete, head)
2. S3ObjectStore - boto3 implementation with connection pooling and a fixed timeout

Every call is a direct passthrough. Store failures are raised as
BackupStoreError with the structured S3 error code attached, so the health
prober can classify them. No call is retried here.
"""

import logging
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .conf import ConnectionConfig
from .exceptions import BackupStoreError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class ObjectInfo:
    """A single object listed in the store."""

    def __init__(
        self,
        key: str,
        size: int,
        last_modified: datetime,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.key = key
        self.size = size
        self.last_modified = last_modified
        self.metadata = metadata

    def __repr__(self):
        return f"ObjectInfo(key={self.key!r}, size={self.size}, last_modified={self.last_modified})"


class ObjectStore:
    """Base class for object store adapters."""

    def put(self, key: str, stream: BinaryIO, metadata: Dict[str, str]) -> None:
        """
        Upload a stream under the given key.

        Args:
            key: Destination object key
            stream: Readable binary stream with the payload
            metadata: User metadata attached to the object

        Raises:
            BackupStoreError: if the upload fails
        """
        raise NotImplementedError

    def get(self, key: str) -> BinaryIO:
        """
        Open an object for streaming download.

        Args:
            key: Object key

        Returns:
            Readable binary stream; the caller closes it

        Raises:
            BackupStoreError: if the object cannot be fetched
        """
        raise NotImplementedError

    def list(self, prefix: str, max_keys: int) -> List[ObjectInfo]:
        """
        List up to max_keys objects whose key starts with prefix.

        Raises:
            BackupStoreError: if the listing fails
        """
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """
        Delete an object.

        Raises:
            BackupStoreError: if the deletion fails
        """
        raise NotImplementedError

    def head(self, key: str) -> Optional[ObjectInfo]:
        """
        Fetch size, last-modified time and user metadata of one object.

        Returns:
            ObjectInfo with metadata, or None if the object doesn't exist
        """
        raise NotImplementedError


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


class S3ObjectStore(ObjectStore):
    """
    S3-compatible object store backend.

    Uses a single boto3 client per process with keep-alive connections, a
    capped connection pool and a fixed request timeout. botocore's own retry
    handler is turned off: callers decide whether to retry.
    """

    def __init__(self, config: ConnectionConfig, client=None):
        """
        Initialize the S3 object store.

        Args:
            config: Validated connection configuration
            client: Pre-built boto3 S3 client (defaults to one built from config)
        """
        self.config = config
        self.bucket_name = config.bucket

        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=Config(
                connect_timeout=config.request_timeout,
                read_timeout=config.request_timeout,
                max_pool_connections=config.max_pool_connections,
                tcp_keepalive=True,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

        logger.info(
            f"S3ObjectStore initialized with bucket: {self.bucket_name}, "
            f"endpoint: {config.endpoint}"
        )

    def _wrap(self, error: Exception, operation: str, key: Optional[str] = None):
        code = _error_code(error)
        target = f" {key}" if key else ""
        return BackupStoreError(
            f"S3ObjectStore: {operation}{target} failed: {error}",
            operation=operation,
            key=key,
            code=code,
        )

    def put(self, key: str, stream: BinaryIO, metadata: Dict[str, str]) -> None:
        try:
            self.client.upload_fileobj(
                stream,
                self.bucket_name,
                key,
                ExtraArgs={
                    "Metadata": metadata,
                    "ContentType": "application/octet-stream",
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap(e, "put", key) from e

        logger.debug(f"S3ObjectStore: Uploaded {key}")

    def get(self, key: str) -> BinaryIO:
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap(e, "get", key) from e

        body = response.get("Body")
        if body is None:
            raise BackupStoreError(
                f"S3ObjectStore: No data received for {key}", operation="get", key=key
            )
        return body

    def list(self, prefix: str, max_keys: int) -> List[ObjectInfo]:
        objects = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=self.bucket_name,
                Prefix=prefix,
                PaginationConfig={"MaxItems": max_keys, "PageSize": min(max_keys, 1000)},
            )
            for page in pages:
                for item in page.get("Contents", []):
                    objects.append(
                        ObjectInfo(
                            key=item["Key"],
                            size=item.get("Size", 0),
                            last_modified=item["LastModified"],
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap(e, "list", prefix) from e

        return objects[:max_keys]

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap(e, "delete", key) from e

        logger.debug(f"S3ObjectStore: Deleted {key}")

    def head(self, key: str) -> Optional[ObjectInfo]:
        try:
            response = self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise self._wrap(e, "head", key) from e
        except BotoCoreError as e:
            raise self._wrap(e, "head", key) from e

        return ObjectInfo(
            key=key,
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            metadata=response.get("Metadata", {}),
        )


def build_object_store(config: ConnectionConfig) -> ObjectStore:
    """
    Validate the configuration and build the S3 object store.

    Raises:
        BackupConfigurationError: if the configuration is invalid; no client is created
    """
    config.validate()
    return S3ObjectStore(config)
