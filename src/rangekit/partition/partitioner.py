"""Boundary walk: split an object into record-aligned byte ranges and publish them."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from tqdm import tqdm

from rangekit.config import PartitionConfig
from rangekit.errors import InvalidInput
from rangekit.partition.boundary import BoundaryResolver
from rangekit.partition.size_probe import SizeProbe
from rangekit.types import (
    BoundaryResolution,
    BoundaryWarning,
    PartitionDescriptor,
    RunOutcome,
    RunRequest,
)

logger = logging.getLogger(__name__)

__all__ = ["PlannedRange", "plan_partitions", "RangePartitioner"]


@dataclass(frozen=True)
class PlannedRange:
    """One step of the boundary walk."""

    start_byte: int
    proposed_end: int
    resolution: BoundaryResolution

    @property
    def end_byte(self) -> int:
        return self.resolution.end_byte


def plan_partitions(
        object_size: int,
        target_size: int,
        resolve: Callable[[int, int], BoundaryResolution],
        *,
        should_stop: Optional[Callable[[], bool]] = None,
) -> Iterator[PlannedRange]:
    """
    Walk an object from byte 0, yielding contiguous record-aligned ranges.

    Each range starts right after the previous one ends, so the ranges
    cover [0, object_size) exactly once. The walk is sequential because
    each cut depends on where the previous range ended.

    Args:
        object_size: Total object size in bytes (must be positive)
        target_size: Nominal partition size in bytes
        resolve: Boundary resolver, (proposed_end, object_size) -> resolution
        should_stop: Checked before each step; returning True ends the walk early

    Yields:
        PlannedRange for each partition, in byte-offset order

    Raises:
        InvalidInput: If object_size or target_size is not positive
        RuntimeError: If the resolver returns an end outside [proposed_end, object_size)
    """
    if object_size <= 0:
        raise InvalidInput(f"File size is zero or negative: {object_size}")
    if target_size <= 0:
        raise InvalidInput(f"Partition target size must be positive, got {target_size}")

    start = 0
    while start < object_size:
        if should_stop is not None and should_stop():
            return

        proposed_end = min(start + target_size - 1, object_size - 1)
        resolution = resolve(proposed_end, object_size)

        end = resolution.end_byte
        if end < proposed_end or end >= object_size:
            raise RuntimeError(
                f"Boundary resolver returned {end} for proposed end {proposed_end} "
                f"(object size {object_size})"
            )

        yield PlannedRange(start, proposed_end, resolution)
        start = end + 1


class RangePartitioner:
    """
    Computes the partitions of one object and pushes each into a PublishSink.

    A partitioner serves a single run: the sink it is given collects the
    acknowledgements of that run only.
    """

    def __init__(
            self,
            store,
            sink,
            config: Optional[PartitionConfig] = None,
            *,
            show_progress: bool = False,
    ):
        self._store = store
        self._sink = sink
        self.config = config or PartitionConfig()
        self.show_progress = show_progress

    def run(
            self,
            request: RunRequest,
            cancel_event: Optional[threading.Event] = None,
    ) -> RunOutcome:
        """
        Partition the requested object and publish every descriptor.

        Args:
            request: Object to partition and the run id to tag descriptors with
            cancel_event: Optional signal checked once per partition; when set,
                the walk stops, in-flight publishes are settled and the run aborts

        Returns:
            Completed outcome if every descriptor was acknowledged, otherwise
            Aborted with the failure count

        Raises:
            InvalidInput: Blank request fields, bad config, or object size <= 0
            ObjectNotFound, AccessDenied, TransientIOError: From the size probe
        """
        request.validate()
        self.config.validate()
        t0 = time.perf_counter()

        object_size = SizeProbe(self._store).size(request.source_id, request.object_key)
        if object_size <= 0:
            raise InvalidInput(f"File size is zero or negative: {object_size}")

        resolver = BoundaryResolver(
            self._store,
            request.source_id,
            request.object_key,
            window_bytes=self.config.boundary_probe_window_bytes,
            terminator=self.config.record_terminator,
            max_attempts=self.config.probe_max_attempts,
            retry_delay=self.config.probe_retry_delay_s,
            backoff=self.config.probe_backoff,
        )

        should_stop = cancel_event.is_set if cancel_event is not None else None
        warnings: List[BoundaryWarning] = []
        seq = 0
        covered = 0

        with tqdm(
            total=object_size,
            desc="Bytes partitioned:",
            unit="B",
            unit_scale=True,
            ncols=100,
            disable=not self.show_progress,
        ) as pbar:
            for planned in plan_partitions(
                object_size,
                self.config.partition_target_size_bytes,
                resolver.resolve,
                should_stop=should_stop,
            ):
                if planned.resolution.condition.degraded:
                    warnings.append(BoundaryWarning(
                        sequence_number=seq,
                        proposed_end=planned.proposed_end,
                        resolved_end=planned.end_byte,
                        condition=planned.resolution.condition,
                        detail=planned.resolution.detail,
                    ))

                descriptor = PartitionDescriptor(
                    source_id=request.source_id,
                    object_key=request.object_key,
                    start_byte=planned.start_byte,
                    end_byte=planned.end_byte,
                    sequence_number=seq,
                    run_id=request.run_id,
                )
                self._sink.publish(descriptor)

                seq += 1
                covered = planned.end_byte + 1
                pbar.update(descriptor.size)

        logger.info("Created %d partitions for file: %s", seq, request.object_key)

        # Settle-point: every dispatched publish must resolve before deciding.
        failed = self._sink.await_and_count_failures()
        elapsed = time.perf_counter() - t0

        for warning in warnings:
            logger.warning("Run %s: unaligned boundary, %s", request.run_id, warning.describe())

        if failed > 0:
            logger.error(
                "Run %s aborted: %d of %d partitions failed to publish (%.2fs)",
                request.run_id, failed, seq, elapsed
            )
            return RunOutcome.aborted(
                request.run_id,
                f"Failed to send {failed} partitions to Kafka. Aborting job.",
                partition_count=seq,
                failed_publish_count=failed,
                object_size=object_size,
                warnings=tuple(warnings),
                failed_sequences=self._sink.failed_sequences(),
            )

        if covered < object_size:
            logger.warning(
                "Run %s cancelled after %d partitions (%s of %s bytes)",
                request.run_id, seq, f"{covered:,}", f"{object_size:,}"
            )
            return RunOutcome.aborted(
                request.run_id,
                f"cancelled after {seq} partitions ({covered:,} of {object_size:,} bytes)",
                partition_count=seq,
                object_size=object_size,
                warnings=tuple(warnings),
            )

        logger.info(
            "Run %s completed: %d partitions, %d unaligned boundaries (%.2fs)",
            request.run_id, seq, len(warnings), elapsed
        )
        return RunOutcome.completed(
            request.run_id,
            seq,
            object_size=object_size,
            warnings=tuple(warnings),
        )
