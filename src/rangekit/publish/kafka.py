"""Kafka producer construction."""
from __future__ import annotations

import logging

from kafka import KafkaProducer

from rangekit.errors import InvalidInput

logger = logging.getLogger(__name__)

__all__ = ["create_producer", "PRODUCER_DEFAULTS"]

# acks=all with bounded retries; ordering per key is kept by the broker.
PRODUCER_DEFAULTS = {
    "acks": "all",
    "retries": 3,
    "max_in_flight_requests_per_connection": 5,
    "compression_type": "gzip",
    "request_timeout_ms": 30_000,
    "linger_ms": 5,
}


def create_producer(bootstrap_servers: str, **overrides) -> KafkaProducer:
    """
    Create a KafkaProducer shared by every run in the process.

    Keys and values are passed as bytes, so no serializers are installed.

    Args:
        bootstrap_servers: Comma-separated host:port list
        **overrides: Extra KafkaProducer settings (override PRODUCER_DEFAULTS)

    Returns:
        Connected KafkaProducer

    Raises:
        InvalidInput: If bootstrap_servers is empty
    """
    if not bootstrap_servers or not bootstrap_servers.strip():
        raise InvalidInput("Kafka bootstrap servers are not configured")

    servers = [s.strip() for s in bootstrap_servers.split(",") if s.strip()]
    settings = dict(PRODUCER_DEFAULTS)
    settings.update(overrides)

    logger.info("Connecting Kafka producer to %s", ", ".join(servers))
    return KafkaProducer(bootstrap_servers=servers, **settings)
