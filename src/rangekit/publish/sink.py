"""Asynchronous descriptor publishing with a settle-point failure count."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, wait
from typing import Dict, List, Tuple

from rangekit.errors import PublishFailure
from rangekit.publish.encoding import encode_descriptor
from rangekit.types import PartitionDescriptor

logger = logging.getLogger(__name__)

__all__ = ["PublishSink"]


class PublishSink:
    """
    Publishes descriptors for one run without waiting for broker acks.

    Every descriptor gets its own acknowledgement future which settles to
    True (delivered) or False (rejected). A send that fails synchronously
    settles its future immediately. ``await_and_count_failures`` is the
    settle-point: it returns only once every acknowledgement has arrived
    or the settle timeout has passed.

    The producer is expected to follow kafka-python's contract: ``send``
    returns a future supporting ``add_callback`` / ``add_errback``, and
    ``flush`` pushes out buffered records. One producer may be shared by
    several sinks running on different threads.
    """

    def __init__(self, producer, topic: str, *, settle_timeout: float = 120.0):
        self._producer = producer
        self.topic = topic
        self.settle_timeout = settle_timeout
        self._lock = threading.Lock()
        self._acks: List[Tuple[int, Future]] = []
        self._errors: Dict[int, PublishFailure] = {}

    @property
    def submitted(self) -> int:
        with self._lock:
            return len(self._acks)

    def publish(self, descriptor: PartitionDescriptor) -> None:
        """Hand a descriptor to the producer; never blocks on delivery."""
        ack: Future = Future()
        with self._lock:
            self._acks.append((descriptor.sequence_number, ack))

        try:
            key, value = encode_descriptor(descriptor)
            record = self._producer.send(self.topic, key=key, value=value)
        except Exception as exc:
            logger.error(
                "Failed to send partition %d to Kafka immediately: %s",
                descriptor.sequence_number, exc
            )
            self._settle(descriptor, ack, exc)
            return

        record.add_callback(self._on_delivered, descriptor, ack)
        record.add_errback(self._on_failed, descriptor, ack)

    def await_and_count_failures(self) -> int:
        """
        Block until every published descriptor is acknowledged or failed.

        Returns:
            Number of descriptors that were not delivered: synchronous send
            failures, negative acknowledgements, and acknowledgements still
            missing when the settle timeout expires.
        """
        # flush and wait share one settle_timeout budget
        deadline = time.monotonic() + self.settle_timeout
        try:
            self._producer.flush(timeout=self.settle_timeout)
        except Exception as exc:
            # Unsettled acks are counted below.
            logger.warning("Producer flush did not complete: %s", exc)

        with self._lock:
            acks = list(self._acks)

        remaining = max(0.0, deadline - time.monotonic())
        done, not_done = wait([ack for _, ack in acks], timeout=remaining)

        failed = 0
        for seq, ack in acks:
            if ack in not_done:
                failed += 1
                with self._lock:
                    self._errors[seq] = PublishFailure(
                        f"no acknowledgement within {self.settle_timeout:.1f}s", seq
                    )
                logger.error(
                    "No acknowledgement for partition %d within %.1fs", seq, self.settle_timeout
                )
            elif not ack.result():
                failed += 1

        if failed:
            logger.error("Failed to send %d out of %d partitions to Kafka", failed, len(acks))
        else:
            logger.info("All %d partitions acknowledged by Kafka", len(acks))
        return failed

    def failed_sequences(self) -> Tuple[int, ...]:
        """Sequence numbers of descriptors known to have failed so far."""
        with self._lock:
            return tuple(sorted(self._errors))

    def failures(self) -> List[PublishFailure]:
        with self._lock:
            return [self._errors[seq] for seq in sorted(self._errors)]

    def _on_delivered(self, descriptor: PartitionDescriptor, ack: Future, _metadata) -> None:
        logger.info(
            "Sent partition %d to Kafka: bytes %d-%d",
            descriptor.sequence_number, descriptor.start_byte, descriptor.end_byte
        )
        ack.set_result(True)

    def _on_failed(self, descriptor: PartitionDescriptor, ack: Future, exc: Exception) -> None:
        logger.error(
            "Failed to send partition %d to Kafka: bytes %d-%d (%s)",
            descriptor.sequence_number, descriptor.start_byte, descriptor.end_byte, exc
        )
        self._settle(descriptor, ack, exc)

    def _settle(self, descriptor: PartitionDescriptor, ack: Future, exc: Exception) -> None:
        with self._lock:
            self._errors[descriptor.sequence_number] = PublishFailure(
                str(exc) or type(exc).__name__, descriptor.sequence_number
            )
        ack.set_result(False)
