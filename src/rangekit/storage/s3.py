"""S3 object store: HEAD for size and ranged GET for boundary probes."""
from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from rangekit.errors import AccessDenied, ObjectNotFound, StorageError, TransientIOError

logger = logging.getLogger(__name__)

__all__ = ["S3ObjectStore", "create_s3_client", "translate_client_error"]

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
ACCESS_DENIED_CODES = frozenset({"403", "AccessDenied", "Forbidden", "AllAccessDisabled"})


def create_s3_client(
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        *,
        max_pool_connections: int = 50,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
):
    """
    Build a boto3 S3 client using the default credential chain.

    Args:
        region: AWS region name (None lets boto3 resolve it)
        endpoint_url: Custom endpoint for S3-compatible stores (MinIO, LocalStack)
        max_pool_connections: Connection pool size, shared by concurrent runs
        connect_timeout: Socket connect timeout in seconds
        read_timeout: Socket read timeout in seconds

    Returns:
        botocore S3 client
    """
    config = Config(
        max_pool_connections=max_pool_connections,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": 3, "mode": "standard"},
    )
    kwargs = {"config": config}
    if region:
        kwargs["region_name"] = region
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    logger.info("Creating S3 client (region=%s, endpoint=%s)", region or "default", endpoint_url or "aws")
    return boto3.client("s3", **kwargs)


def translate_client_error(exc: Exception, bucket: str, key: str) -> StorageError:
    """
    Map a botocore exception onto the storage error taxonomy.

    Args:
        exc: ClientError or BotoCoreError raised by the client
        bucket: Bucket of the failed call
        key: Key of the failed call

    Returns:
        ObjectNotFound, AccessDenied or TransientIOError
    """
    location = f"s3://{bucket}/{key}"
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        message = error.get("Message") or str(exc)
        if code in NOT_FOUND_CODES:
            return ObjectNotFound(f"S3 file not found: {location}", bucket, key)
        if code in ACCESS_DENIED_CODES:
            return AccessDenied(f"Access denied to {location}: {message}", bucket, key)
        return TransientIOError(f"S3 error for {location} ({code}): {message}", bucket, key)
    return TransientIOError(f"S3 I/O error for {location}: {exc}", bucket, key)


class S3ObjectStore:
    """Read-only view of S3 used by the partitioner."""

    def __init__(self, client):
        self._client = client

    def head_size(self, bucket: str, key: str) -> int:
        """
        Return the object's size in bytes.

        Raises:
            ObjectNotFound, AccessDenied, TransientIOError
        """
        try:
            response = self._client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise translate_client_error(exc, bucket, key) from exc
        return int(response["ContentLength"])

    def read_range(self, bucket: str, key: str, start: int, end: int) -> bytes:
        """
        Read the inclusive byte range [start, end] of an object.

        Raises:
            ObjectNotFound, AccessDenied, TransientIOError
        """
        if start < 0 or end < start:
            raise ValueError(f"Invalid byte range {start}-{end}")
        try:
            response = self._client.get_object(Bucket=bucket, Key=key, Range=f"bytes={start}-{end}")
            body = response["Body"]
            try:
                return body.read()
            finally:
                body.close()
        except (ClientError, BotoCoreError) as exc:
            raise translate_client_error(exc, bucket, key) from exc
