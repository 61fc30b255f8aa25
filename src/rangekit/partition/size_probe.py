"""Object size lookup at the start of a run."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

__all__ = ["SizeProbe"]


class SizeProbe:
    """Queries object storage once per run for the object's size."""

    def __init__(self, store):
        self._store = store

    def size(self, source_id: str, object_key: str) -> int:
        """
        Return the size of s3://source_id/object_key in bytes.

        Errors from the store (ObjectNotFound, AccessDenied, TransientIOError)
        propagate unchanged; retrying is the caller's decision.
        """
        size = self._store.head_size(source_id, object_key)
        logger.info("File size: %s bytes for s3://%s/%s", f"{size:,}", source_id, object_key)
        return size
