"""One-shot-per-run coordination around the range partitioner."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from rangekit.config import PartitionConfig
from rangekit.coordinator.registry import InMemoryRunRegistry
from rangekit.errors import InvalidInput, RangekitError, StorageError
from rangekit.partition.partitioner import RangePartitioner
from rangekit.publish.sink import PublishSink
from rangekit.types import RunOutcome, RunRequest, SkipReason

logger = logging.getLogger(__name__)

__all__ = ["JobCoordinator", "make_partitioner_factory"]

PartitionerFactory = Callable[[RunRequest], RangePartitioner]


def make_partitioner_factory(
        store,
        producer,
        topic: str,
        config: Optional[PartitionConfig] = None,
        *,
        show_progress: bool = False,
) -> PartitionerFactory:
    """
    Build a factory producing one partitioner, with its own sink, per run.

    The store and producer are shared by every run.
    """
    config = config or PartitionConfig()

    def _factory(request: RunRequest) -> RangePartitioner:
        sink = PublishSink(producer, topic, settle_timeout=config.settle_timeout_s)
        return RangePartitioner(store, sink, config, show_progress=show_progress)

    return _factory


class JobCoordinator:
    """
    Runs the partitioner at most once per run id.

    A run id that is in flight or already completed is skipped; an aborted
    run id may be submitted again. Every executed run ends in exactly one
    terminal outcome, which is recorded in the registry. Skips are counted
    on the record of the run they collided with.
    """

    def __init__(
            self,
            partitioner_factory: PartitionerFactory,
            registry=None,
            *,
            max_workers: int = 4,
    ):
        """
        Initialize the coordinator.

        Args:
            partitioner_factory: Called once per executed run
            registry: Run registry (default: InMemoryRunRegistry)
            max_workers: Threads available to submit_async
        """
        self._factory = partitioner_factory
        self.registry = registry if registry is not None else InMemoryRunRegistry()
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._executor: Optional[ThreadPoolExecutor] = None

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, request: RunRequest) -> RunOutcome:
        """
        Execute a run on the calling thread unless its run id is taken.

        Returns:
            Skipped if the run id is in flight or completed, otherwise the
            run's Completed or Aborted outcome
        """
        try:
            request.validate()
        except InvalidInput as exc:
            logger.error("Rejected run request %r: %s", request, exc)
            return RunOutcome.aborted(request.run_id or "", f"invalid input: {exc}")

        reason = self.registry.claim(request)
        if reason is not None:
            if reason is SkipReason.ALREADY_RUNNING:
                logger.warning("Job already running for file: %s (run %s)", request.uri, request.run_id)
            else:
                logger.warning("Job already completed for file: %s (run %s)", request.uri, request.run_id)
            outcome = RunOutcome.skipped(request.run_id, reason)
            self.registry.record_skip(outcome)
            return outcome

        event = threading.Event()
        with self._lock:
            self._cancel_events[request.run_id] = event

        try:
            outcome = self._execute(request, event)
        finally:
            with self._lock:
                self._cancel_events.pop(request.run_id, None)

        self.registry.finish(outcome)
        return outcome

    def submit_async(self, request: RunRequest) -> "Future[RunOutcome]":
        """Execute a run on a worker thread; the future resolves to its outcome."""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="rangekit-run",
                )
            executor = self._executor
        return executor.submit(self.submit, request)

    def cancel(self, run_id: str) -> bool:
        """
        Ask an in-flight run to stop after its current partition.

        Returns:
            True if the run was in flight on this coordinator
        """
        with self._lock:
            event = self._cancel_events.get(run_id)
        if event is None:
            return False
        logger.info("Cancellation requested for run %s", run_id)
        event.set()
        return True

    def active_runs(self) -> List[str]:
        with self._lock:
            return sorted(self._cancel_events)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "JobCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True)

    # =========================================================================
    # Execution
    # =========================================================================

    def _execute(self, request: RunRequest, cancel_event: threading.Event) -> RunOutcome:
        logger.info("Starting partitioning run %s for file: %s", request.run_id, request.uri)

        try:
            partitioner = self._factory(request)
            outcome = partitioner.run(request, cancel_event=cancel_event)

        except InvalidInput as exc:
            logger.error("Run %s rejected for %s: %s", request.run_id, request.uri, exc)
            return RunOutcome.aborted(request.run_id, f"invalid input: {exc}")

        except StorageError as exc:
            logger.error(
                "Run %s failed accessing %s: %s (%s)",
                request.run_id, request.uri, exc, type(exc).__name__
            )
            return RunOutcome.aborted(request.run_id, f"{type(exc).__name__}: {exc}")

        except RangekitError as exc:
            logger.error("Run %s failed for %s: %s", request.run_id, request.uri, exc)
            return RunOutcome.aborted(request.run_id, str(exc))

        except Exception as exc:
            logger.exception("Unexpected error during partitioning of %s", request.uri)
            return RunOutcome.aborted(request.run_id, f"unexpected error: {exc}")

        logger.info(
            "Run %s finished with status %s (%d partitions)",
            request.run_id, outcome.status.value, outcome.partition_count
        )
        return outcome
