# tests/conftest.py
"""Shared test doubles: in-memory object stores and a fake Kafka producer."""
from __future__ import annotations

import threading
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

import pytest

from rangekit.errors import ObjectNotFound, TransientIOError


# --- object stores -----------------------------------------------------------


class MemoryStore:
    """Objects held as real bytes; records every call."""

    def __init__(self, objects: Optional[Dict[Tuple[str, str], bytes]] = None):
        self.objects: Dict[Tuple[str, str], bytes] = dict(objects or {})
        self.head_calls: List[Tuple[str, str]] = []
        self.reads: List[Tuple[int, int]] = []
        self.read_errors: List[Exception] = []  # raised (and consumed) by successive reads

    def head_size(self, bucket: str, key: str) -> int:
        self.head_calls.append((bucket, key))
        if (bucket, key) not in self.objects:
            raise ObjectNotFound(f"S3 file not found: s3://{bucket}/{key}", bucket, key)
        return len(self.objects[(bucket, key)])

    def read_range(self, bucket: str, key: str, start: int, end: int) -> bytes:
        self.reads.append((start, end))
        if self.read_errors:
            raise self.read_errors.pop(0)
        return self.objects[(bucket, key)][start:end + 1]


class SparseStore:
    """
    A large object that is never materialised: every byte is b"x" except
    the given terminator positions, which are b"\\n".
    """

    def __init__(self, size: int, terminators: Iterable[int] = (), fail_reads_at: Iterable[int] = ()):
        self.size = size
        self.terminators: Set[int] = set(terminators)
        self.fail_reads_at: Set[int] = set(fail_reads_at)
        self.head_calls = 0
        self.reads: List[Tuple[int, int]] = []

    def head_size(self, bucket: str, key: str) -> int:
        self.head_calls += 1
        return self.size

    def read_range(self, bucket: str, key: str, start: int, end: int) -> bytes:
        self.reads.append((start, end))
        if start in self.fail_reads_at:
            raise TransientIOError(f"connection reset reading {start}-{end}", bucket, key)
        end = min(end, self.size - 1)
        buf = bytearray(b"x" * (end - start + 1))
        for pos in self.terminators:
            if start <= pos <= end:
                buf[pos - start] = ord("\n")
        return bytes(buf)


# --- kafka doubles -----------------------------------------------------------


class FakeRecordFuture:
    """kafka-python style future: add_callback / add_errback, settled once."""

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: List[Callable] = []
        self._errbacks: List[Callable] = []
        self._done = False
        self._value = None
        self._exception: Optional[Exception] = None

    def add_callback(self, fn, *args):
        with self._lock:
            if not self._done:
                self._callbacks.append(lambda v: fn(*args, v))
                return self
        if self._exception is None:
            fn(*args, self._value)
        return self

    def add_errback(self, fn, *args):
        with self._lock:
            if not self._done:
                self._errbacks.append(lambda e: fn(*args, e))
                return self
        if self._exception is not None:
            fn(*args, self._exception)
        return self

    def success(self, value="metadata"):
        with self._lock:
            self._done, self._value = True, value
            callbacks = list(self._callbacks)
        for cb in callbacks:
            cb(value)

    def failure(self, exc: Exception):
        with self._lock:
            self._done, self._exception = True, exc
            errbacks = list(self._errbacks)
        for eb in errbacks:
            eb(exc)


class FakeProducer:
    """
    Records every send. Delivery modes:
      - "immediate": futures succeed as soon as callbacks are attached
      - "on_flush":  futures settle when flush() is called
      - "manual":    the test settles futures itself via .pending
    Sequence numbers listed in fail_sync raise from send(); those in
    fail_async get a negative acknowledgement.
    """

    def __init__(self, mode: str = "immediate", fail_sync: Iterable[int] = (), fail_async: Iterable[int] = ()):
        self.mode = mode
        self.fail_sync = set(fail_sync)
        self.fail_async = set(fail_async)
        self.sent: List[Tuple[str, bytes, bytes]] = []
        self.pending: List[Tuple[int, FakeRecordFuture]] = []
        self.flush_calls = 0
        self.closed = False
        self._lock = threading.Lock()

    @staticmethod
    def _seq(key: bytes) -> int:
        return int(key.decode("utf-8").rsplit("-", 1)[1])

    def send(self, topic, key=None, value=None):
        seq = self._seq(key)
        if seq in self.fail_sync:
            raise RuntimeError(f"buffer full for partition {seq}")
        with self._lock:
            self.sent.append((topic, key, value))
        fut = FakeRecordFuture()
        if self.mode == "immediate":
            self._settle(seq, fut)
        else:
            with self._lock:
                self.pending.append((seq, fut))
        return fut

    def _settle(self, seq: int, fut: FakeRecordFuture) -> None:
        if seq in self.fail_async:
            fut.failure(RuntimeError(f"NotEnoughReplicas for partition {seq}"))
        else:
            fut.success()

    def settle_all(self) -> None:
        with self._lock:
            pending, self.pending = self.pending, []
        for seq, fut in pending:
            self._settle(seq, fut)

    def flush(self, timeout=None):
        self.flush_calls += 1
        if self.mode == "on_flush":
            self.settle_all()

    def close(self, timeout=None):
        self.closed = True


@pytest.fixture
def memory_store():
    return MemoryStore


@pytest.fixture
def sparse_store():
    return SparseStore


@pytest.fixture
def fake_producer():
    return FakeProducer
