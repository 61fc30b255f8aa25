# tests/coordinator/test_job.py
from __future__ import annotations

import json
import threading

import pytest

from rangekit.config import PartitionConfig
from rangekit.coordinator.job import JobCoordinator, make_partitioner_factory
from rangekit.coordinator.registry import InMemoryRunRegistry
from rangekit.errors import AccessDenied, InvalidInput, RangekitError
from rangekit.events import parse_notification
from rangekit.types import RunOutcome, RunRequest, RunStatus, SkipReason

REQUEST = RunRequest(source_id="files", object_key="transactions.txt", run_id="run-1")


class StubPartitioner:
    """Returns a fixed outcome or raises; optionally blocks until released."""

    def __init__(self, result=None, *, started=None, release=None):
        self.result = result
        self.started = started
        self.release = release
        self.cancel_event = None

    def run(self, request, cancel_event=None):
        self.cancel_event = cancel_event
        if self.started is not None:
            self.started.set()
        if self.release is not None:
            assert self.release.wait(5.0)
        if isinstance(self.result, Exception):
            raise self.result
        if self.result is None:
            return RunOutcome.completed(request.run_id, 3, object_size=300)
        return self.result


def _coordinator(partitioner, registry=None):
    calls = []

    def factory(request):
        calls.append(request)
        return partitioner

    return JobCoordinator(factory, registry or InMemoryRunRegistry(), max_workers=2), calls


def test_completed_run_is_recorded():
    coordinator, calls = _coordinator(StubPartitioner())

    outcome = coordinator.submit(REQUEST)

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.partition_count == 3
    record = coordinator.registry.get("run-1")
    assert record.status is RunStatus.COMPLETED
    assert record.partition_count == 3
    assert len(calls) == 1


def test_completed_run_id_is_skipped(caplog):
    coordinator, calls = _coordinator(StubPartitioner())
    coordinator.submit(REQUEST)

    outcome = coordinator.submit(REQUEST)

    assert outcome.status is RunStatus.SKIPPED
    assert outcome.skip_reason is SkipReason.ALREADY_COMPLETED
    assert outcome.ok
    assert len(calls) == 1
    assert "Job already completed for file: s3://files/transactions.txt" in caplog.text
    assert coordinator.registry.get("run-1").skip_count == 1


def test_running_run_id_is_skipped():
    started, release = threading.Event(), threading.Event()
    coordinator, calls = _coordinator(StubPartitioner(started=started, release=release))

    with coordinator:
        first = coordinator.submit_async(REQUEST)
        assert started.wait(5.0)
        assert coordinator.active_runs() == ["run-1"]

        second = coordinator.submit(REQUEST)
        release.set()

        assert second.status is RunStatus.SKIPPED
        assert second.skip_reason is SkipReason.ALREADY_RUNNING
        assert first.result(5.0).status is RunStatus.COMPLETED

    assert len(calls) == 1
    assert coordinator.active_runs() == []


def test_concurrent_duplicates_run_once():
    started, release = threading.Event(), threading.Event()
    coordinator, calls = _coordinator(StubPartitioner(started=started, release=release))

    with coordinator:
        futures = [coordinator.submit_async(REQUEST) for _ in range(6)]
        assert started.wait(5.0)
        release.set()
        outcomes = [f.result(5.0) for f in futures]

    statuses = [o.status for o in outcomes]
    assert statuses.count(RunStatus.COMPLETED) == 1
    assert statuses.count(RunStatus.SKIPPED) == 5
    assert len(calls) == 1


def test_aborted_run_can_be_resubmitted():
    partitioner = StubPartitioner(RunOutcome.aborted("run-1", "Failed to send 1 partitions to Kafka. Aborting job.",
                                                     partition_count=3, failed_publish_count=1))
    coordinator, calls = _coordinator(partitioner)

    assert coordinator.submit(REQUEST).status is RunStatus.ABORTED
    partitioner.result = None
    assert coordinator.submit(REQUEST).status is RunStatus.COMPLETED

    assert len(calls) == 2
    assert coordinator.registry.get("run-1").attempts == 2


@pytest.mark.parametrize(
    "error, expected",
    [
        (InvalidInput("File size is zero or negative: 0"), "invalid input: File size is zero or negative: 0"),
        (AccessDenied("Access denied to s3://files/transactions.txt"),
         "AccessDenied: Access denied to s3://files/transactions.txt"),
        (RangekitError("boom"), "boom"),
        (RuntimeError("kaput"), "unexpected error: kaput"),
    ],
)
def test_errors_become_aborted_outcomes(error, expected):
    coordinator, _ = _coordinator(StubPartitioner(error))

    outcome = coordinator.submit(REQUEST)

    assert outcome.status is RunStatus.ABORTED
    assert outcome.cause == expected
    assert coordinator.registry.get("run-1").status is RunStatus.ABORTED


def test_invalid_request_never_reaches_registry():
    coordinator, calls = _coordinator(StubPartitioner())

    outcome = coordinator.submit(RunRequest(source_id="", object_key="k", run_id="run-2"))

    assert outcome.status is RunStatus.ABORTED
    assert outcome.cause == "invalid input: source_id cannot be null or empty"
    assert coordinator.registry.get("run-2") is None
    assert calls == []


def test_cancel_sets_the_runs_event():
    started, release = threading.Event(), threading.Event()
    partitioner = StubPartitioner(started=started, release=release)
    coordinator, _ = _coordinator(partitioner)

    with coordinator:
        future = coordinator.submit_async(REQUEST)
        assert started.wait(5.0)
        assert coordinator.cancel("run-1") is True
        assert partitioner.cancel_event.is_set()
        release.set()
        future.result(5.0)

    assert coordinator.cancel("run-1") is False
    assert coordinator.cancel("unknown") is False


def test_factory_runs_real_partitioner(memory_store, fake_producer):
    store = memory_store({("files", "transactions.txt"): b"a\nbb\nccc\ndddd\n"})
    producer = fake_producer()
    factory = make_partitioner_factory(
        store, producer, "file-partitions", PartitionConfig(partition_target_size_bytes=4, boundary_probe_window_bytes=4)
    )
    coordinator = JobCoordinator(factory)

    outcome = coordinator.submit(REQUEST)

    assert outcome.status is RunStatus.COMPLETED
    assert outcome.partition_count == len(producer.sent)
    assert {topic for topic, _, _ in producer.sent} == {"file-partitions"}

    # A second run on the same producer gets its own sink.
    other = RunRequest(source_id="files", object_key="transactions.txt", run_id="run-2")
    assert coordinator.submit(other).partition_count == outcome.partition_count


def test_missing_object_aborts_with_type_name(memory_store, fake_producer):
    factory = make_partitioner_factory(memory_store(), fake_producer(), "t")
    outcome = JobCoordinator(factory).submit(REQUEST)

    assert outcome.status is RunStatus.ABORTED
    assert outcome.cause == "ObjectNotFound: S3 file not found: s3://files/transactions.txt"


def test_tokenless_notification_partitions_every_file(memory_store, fake_producer):
    records = [
        {"eventName": "ObjectCreated:Put", "s3": {"bucket": {"name": "files"}, "object": {"key": key}}}
        for key in ("a.txt", "b.txt")
    ]
    store = memory_store({("files", "a.txt"): b"one\ntwo\n", ("files", "b.txt"): b"three\nfour\n"})
    coordinator = JobCoordinator(make_partitioner_factory(store, fake_producer(), "t"))

    outcomes = [coordinator.submit(r) for r in parse_notification(json.dumps({"Records": records}))]

    assert [o.status for o in outcomes] == [RunStatus.COMPLETED, RunStatus.COMPLETED]
    assert outcomes[0].run_id != outcomes[1].run_id
