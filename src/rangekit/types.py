"""Value types shared across the partitioning pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from rangekit.errors import InvalidInput

__all__ = [
    "PartitionDescriptor",
    "RunRequest",
    "RunStatus",
    "SkipReason",
    "RunOutcome",
    "BoundaryCondition",
    "BoundaryResolution",
    "BoundaryWarning",
]


@dataclass(frozen=True)
class PartitionDescriptor:
    """One contiguous, inclusive byte range of a source object."""

    source_id: str
    """Bucket holding the object"""

    object_key: str
    """Key of the object inside the bucket"""

    start_byte: int
    """First byte of the range (inclusive)"""

    end_byte: int
    """Last byte of the range (inclusive)"""

    sequence_number: int
    """0-based position of this range within its run"""

    run_id: str
    """Identifier correlating all descriptors of one partitioning pass"""

    @property
    def size(self) -> int:
        return self.end_byte - self.start_byte + 1

    @property
    def message_key(self) -> str:
        return f"partition-{self.sequence_number}"


@dataclass(frozen=True)
class RunRequest:
    """Input to one partitioning run."""

    source_id: str
    object_key: str
    run_id: str

    def validate(self) -> None:
        """
        Reject blank fields.

        Raises:
            InvalidInput: If any of source_id, object_key or run_id is blank
        """
        for name in ("source_id", "object_key", "run_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidInput(f"{name} cannot be null or empty")

    @property
    def uri(self) -> str:
        return f"s3://{self.source_id}/{self.object_key}"


class RunStatus(str, Enum):
    # RUNNING only appears in run registry records, never in a RunOutcome.
    COMPLETED = "completed"
    ABORTED = "aborted"
    SKIPPED = "skipped"
    RUNNING = "running"


class SkipReason(str, Enum):
    ALREADY_RUNNING = "already_running"
    ALREADY_COMPLETED = "already_completed"


class BoundaryCondition(str, Enum):
    """How a proposed cut point was turned into a partition end."""

    ALIGNED = "aligned"
    END_OF_OBJECT = "end_of_object"
    NOT_FOUND = "boundary_not_found"
    PROBE_FAILED = "probe_failed"

    @property
    def degraded(self) -> bool:
        return self in (BoundaryCondition.NOT_FOUND, BoundaryCondition.PROBE_FAILED)


@dataclass(frozen=True)
class BoundaryResolution:
    end_byte: int
    condition: BoundaryCondition
    detail: Optional[str] = None


@dataclass(frozen=True)
class BoundaryWarning:
    """A partition end that could not be aligned to a record terminator."""

    sequence_number: int
    proposed_end: int
    resolved_end: int
    condition: BoundaryCondition
    detail: Optional[str] = None

    def describe(self) -> str:
        text = (
            f"partition {self.sequence_number}: {self.condition.value} "
            f"(proposed end {self.proposed_end:,}, used {self.resolved_end:,})"
        )
        if self.detail:
            text += f" - {self.detail}"
        return text


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of one run."""

    run_id: str
    status: RunStatus
    partition_count: int = 0
    failed_publish_count: int = 0
    cause: Optional[str] = None
    skip_reason: Optional[SkipReason] = None
    object_size: Optional[int] = None
    warnings: Tuple[BoundaryWarning, ...] = field(default_factory=tuple)
    failed_sequences: Tuple[int, ...] = field(default_factory=tuple)

    @classmethod
    def completed(
        cls,
        run_id: str,
        partition_count: int,
        *,
        object_size: Optional[int] = None,
        warnings: Tuple[BoundaryWarning, ...] = (),
    ) -> "RunOutcome":
        return cls(
            run_id=run_id,
            status=RunStatus.COMPLETED,
            partition_count=partition_count,
            object_size=object_size,
            warnings=tuple(warnings),
        )

    @classmethod
    def aborted(
        cls,
        run_id: str,
        cause: str,
        *,
        partition_count: int = 0,
        failed_publish_count: int = 0,
        object_size: Optional[int] = None,
        warnings: Tuple[BoundaryWarning, ...] = (),
        failed_sequences: Tuple[int, ...] = (),
    ) -> "RunOutcome":
        return cls(
            run_id=run_id,
            status=RunStatus.ABORTED,
            partition_count=partition_count,
            failed_publish_count=failed_publish_count,
            cause=cause,
            object_size=object_size,
            warnings=tuple(warnings),
            failed_sequences=tuple(failed_sequences),
        )

    @classmethod
    def skipped(cls, run_id: str, reason: SkipReason) -> "RunOutcome":
        return cls(
            run_id=run_id,
            status=RunStatus.SKIPPED,
            skip_reason=reason,
            cause=reason.value,
        )

    @property
    def ok(self) -> bool:
        """True for Completed and Skipped outcomes."""
        return self.status in (RunStatus.COMPLETED, RunStatus.SKIPPED)
