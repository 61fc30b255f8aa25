"""Console reporting for partitioning runs."""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

from rangekit.config import PartitionConfig
from rangekit.types import RunOutcome, RunRequest, RunStatus
from rangekit.utilities.display import format_banner, format_bytes, shorten_uri

__all__ = ["print_run_header", "print_run_summary"]


def print_run_header(
    start_time: datetime,
    requests: Sequence[RunRequest],
    config: PartitionConfig,
    topic: str,
    bootstrap_servers: str,
) -> None:
    """
    Print the configuration for a batch of runs.

    Args:
        start_time: Batch start timestamp
        requests: Runs about to be submitted
        config: Partitioning settings shared by the runs
        topic: Kafka topic receiving descriptors
        bootstrap_servers: Kafka bootstrap servers
    """
    print(format_banner("BYTE-RANGE PARTITIONING", style="━"))
    print(f"Start Time: {start_time:%Y-%m-%d %H:%M:%S}")
    print()
    print(format_banner("Partition Configuration"))
    print(f"Partition size:       {format_bytes(config.partition_target_size_bytes)}")
    print(f"Probe window:         {format_bytes(config.boundary_probe_window_bytes)}")
    print(f"Record terminator:    {config.record_terminator!r}")
    print(f"Probe attempts:       {config.probe_max_attempts}")
    print(f"Kafka topic:          {topic}")
    print(f"Bootstrap servers:    {bootstrap_servers}")
    print(f"Files to partition:   {len(requests)}")
    for request in requests:
        print(f"  {shorten_uri(request.uri, '  ')}")
    print()


def print_run_summary(
    outcomes: Sequence[RunOutcome],
    start_time: datetime,
    end_time: datetime,
) -> None:
    """
    Print per-run results and batch totals.

    Degraded boundaries and failed partitions are listed so an operator can
    decide between re-running the file under a fresh run id and inspecting
    its format.
    """
    total_runtime = end_time - start_time
    completed = [o for o in outcomes if o.status is RunStatus.COMPLETED]
    aborted = [o for o in outcomes if o.status is RunStatus.ABORTED]
    skipped = [o for o in outcomes if o.status is RunStatus.SKIPPED]

    print(format_banner("Run Results"))
    for outcome in outcomes:
        line = f"{outcome.run_id}: {outcome.status.value}"
        if outcome.status is RunStatus.SKIPPED:
            line += f" ({outcome.skip_reason.value})"
        else:
            line += f", {outcome.partition_count} partitions"
            if outcome.object_size is not None:
                line += f", {format_bytes(outcome.object_size)}"
        print(line)

        if outcome.status is RunStatus.ABORTED and outcome.cause:
            print(f"    cause: {outcome.cause}")
        if outcome.failed_sequences:
            print(f"    failed partitions: {', '.join(str(s) for s in outcome.failed_sequences)}")
        for warning in outcome.warnings:
            print(f"    warning: {warning.describe()}")

    bytes_done = sum(o.object_size or 0 for o in completed)
    print()
    print(format_banner("Final Summary"))
    print(f"Completed runs:              {len(completed)}")
    print(f"Aborted runs:                {len(aborted)}")
    print(f"Skipped runs:                {len(skipped)}")
    print(f"Partitions published:        {sum(o.partition_count for o in completed):,}")
    print(f"Unaligned boundaries:        {sum(len(o.warnings) for o in outcomes)}")
    print(f"Data partitioned:            {format_bytes(bytes_done)}")
    print()
    print(f"End Time: {end_time}")
    print(f"Total Runtime: {total_runtime}")
