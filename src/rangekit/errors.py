"""Exception taxonomy for the range partitioning pipeline."""
from __future__ import annotations

__all__ = [
    "RangekitError",
    "InvalidInput",
    "StorageError",
    "ObjectNotFound",
    "AccessDenied",
    "TransientIOError",
    "PublishFailure",
]


class RangekitError(Exception):
    """Base class for all pipeline errors."""


class InvalidInput(RangekitError, ValueError):
    """Bad request shape, bad configuration, or a zero/negative object size."""


class StorageError(RangekitError):
    """
    Failure talking to object storage.

    Attributes:
        source_id: Bucket the operation targeted
        object_key: Key the operation targeted
    """

    def __init__(self, message: str, source_id: str = "", object_key: str = ""):
        super().__init__(message)
        self.source_id = source_id
        self.object_key = object_key


class ObjectNotFound(StorageError):
    """The object does not exist."""


class AccessDenied(StorageError):
    """The caller lacks rights to read the object or its metadata."""


class TransientIOError(StorageError):
    """Retryable network or service fault."""


class PublishFailure(RangekitError):
    """A descriptor could not be handed to, or was rejected by, the broker."""

    def __init__(self, message: str, sequence_number: int):
        super().__init__(message)
        self.sequence_number = sequence_number
