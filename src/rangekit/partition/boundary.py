"""Record-boundary alignment using small windowed range reads."""
from __future__ import annotations

import logging
import time

from rangekit.config import DEFAULT_PROBE_WINDOW, DEFAULT_TERMINATOR
from rangekit.errors import AccessDenied, ObjectNotFound, StorageError
from rangekit.types import BoundaryCondition, BoundaryResolution

logger = logging.getLogger(__name__)

__all__ = ["BoundaryResolver"]

# Not worth retrying: the object or our rights to it are gone.
_PERMANENT_ERRORS = (ObjectNotFound, AccessDenied)


class BoundaryResolver:
    """
    Moves a proposed cut point forward to the next record terminator.

    Each call reads at most one window of ``window_bytes`` starting at the
    proposed end. Failures never raise: the resolver degrades to an
    unaligned boundary and reports the condition in the result.
    """

    def __init__(
            self,
            store,
            source_id: str,
            object_key: str,
            *,
            window_bytes: int = DEFAULT_PROBE_WINDOW,
            terminator: bytes = DEFAULT_TERMINATOR,
            max_attempts: int = 1,
            retry_delay: float = 0.5,
            backoff: float = 2.0,
    ):
        if window_bytes <= 0:
            raise ValueError(f"window_bytes must be positive, got {window_bytes}")
        if len(terminator) != 1:
            raise ValueError(f"terminator must be a single byte, got {terminator!r}")
        self._store = store
        self.source_id = source_id
        self.object_key = object_key
        self.window_bytes = window_bytes
        self.terminator = terminator
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.backoff = backoff

    def resolve(self, proposed_end: int, object_size: int) -> BoundaryResolution:
        """
        Align a proposed partition end to the end of a complete record.

        Args:
            proposed_end: Nominal last byte of the partition
            object_size: Total object size in bytes

        Returns:
            BoundaryResolution with the absolute end byte and how it was found:
            - END_OF_OBJECT: proposed_end reaches the last byte, no read made
            - ALIGNED: offset of the first terminator at or after proposed_end
            - NOT_FOUND: no terminator in the window, window's last byte used
            - PROBE_FAILED: the window could not be read, proposed_end used
        """
        last_byte = object_size - 1
        if proposed_end >= last_byte:
            return BoundaryResolution(last_byte, BoundaryCondition.END_OF_OBJECT)

        window_end = min(proposed_end + self.window_bytes - 1, last_byte)

        try:
            window = self._read_window(proposed_end, window_end)
        except (StorageError, OSError) as exc:
            logger.error(
                "Error finding line ending at position %d of s3://%s/%s. Using proposed end byte. (%s)",
                proposed_end, self.source_id, self.object_key, exc
            )
            return BoundaryResolution(proposed_end, BoundaryCondition.PROBE_FAILED, str(exc))

        offset = window.find(self.terminator)
        if offset >= 0:
            adjusted = proposed_end + offset
            logger.debug(
                "Adjusted partition boundary from %d to %d (found terminator)",
                proposed_end, adjusted
            )
            return BoundaryResolution(adjusted, BoundaryCondition.ALIGNED)

        logger.warning(
            "No terminator found within %d bytes after position %d of s3://%s/%s. Using window end %d.",
            self.window_bytes, proposed_end, self.source_id, self.object_key, window_end
        )
        return BoundaryResolution(
            window_end,
            BoundaryCondition.NOT_FOUND,
            f"record wider than {self.window_bytes:,}-byte probe window",
        )

    def _read_window(self, start: int, end: int) -> bytes:
        """Read [start, end] with exponential backoff between attempts."""
        delay = self.retry_delay

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._store.read_range(self.source_id, self.object_key, start, end)
            except _PERMANENT_ERRORS:
                raise
            except (StorageError, OSError) as exc:
                if attempt == self.max_attempts:
                    raise
                logger.warning(
                    "Probe read failed (attempt %d/%d): %s - retrying in %.1fs",
                    attempt, self.max_attempts, exc, delay
                )
                time.sleep(delay)
                delay *= self.backoff

        # Unreachable due to raise in loop, but helps type checkers
        raise RuntimeError(f"Failed to read bytes {start}-{end}")
