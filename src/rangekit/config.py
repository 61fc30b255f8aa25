# rangekit/config.py
"""Configuration for partitioning runs and the surrounding service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from rangekit.errors import InvalidInput

__all__ = [
    "DEFAULT_PARTITION_TARGET_SIZE",
    "DEFAULT_PROBE_WINDOW",
    "DEFAULT_TERMINATOR",
    "PartitionConfig",
    "ServiceConfig",
]

DEFAULT_PARTITION_TARGET_SIZE = 50 * 1024 * 1024  # 50 MiB
DEFAULT_PROBE_WINDOW = 1024 * 1024  # 1 MiB
DEFAULT_TERMINATOR = b"\n"

ENV_PREFIX = "RANGEKIT_"


@dataclass(frozen=True)
class PartitionConfig:
    """Boundary-walk and publish settings for a single run."""

    # Partition sizing
    partition_target_size_bytes: int = DEFAULT_PARTITION_TARGET_SIZE
    boundary_probe_window_bytes: int = DEFAULT_PROBE_WINDOW
    record_terminator: bytes = DEFAULT_TERMINATOR

    # Boundary probe retries (1 = single attempt, then fall back)
    probe_max_attempts: int = 1
    probe_retry_delay_s: float = 0.5
    probe_backoff: float = 2.0

    # Upper bound on waiting for broker acknowledgements at the settle-point
    settle_timeout_s: float = 120.0

    def validate(self) -> None:
        """
        Check that every setting is usable.

        Raises:
            InvalidInput: If a size is non-positive or the terminator is not one byte
        """
        if self.partition_target_size_bytes <= 0:
            raise InvalidInput(
                f"partition_target_size_bytes must be positive, got {self.partition_target_size_bytes}"
            )
        if self.boundary_probe_window_bytes <= 0:
            raise InvalidInput(
                f"boundary_probe_window_bytes must be positive, got {self.boundary_probe_window_bytes}"
            )
        if not isinstance(self.record_terminator, bytes) or len(self.record_terminator) != 1:
            raise InvalidInput(
                f"record_terminator must be a single byte, got {self.record_terminator!r}"
            )
        if self.probe_max_attempts < 1:
            raise InvalidInput(f"probe_max_attempts must be >= 1, got {self.probe_max_attempts}")
        if self.settle_timeout_s <= 0:
            raise InvalidInput(f"settle_timeout_s must be positive, got {self.settle_timeout_s}")


@dataclass(frozen=True)
class ServiceConfig:
    """Broker, storage and coordinator settings."""

    # Broker
    topic: str
    bootstrap_servers: str

    # Object storage
    aws_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None

    # Coordinator
    max_workers: int = 4
    registry_path: Optional[Path] = None  # None keeps run history in memory

    partition: PartitionConfig = field(default_factory=PartitionConfig)

    def validate(self) -> None:
        if not self.topic or not self.topic.strip():
            raise InvalidInput("Kafka topic is not configured")
        if not self.bootstrap_servers or not self.bootstrap_servers.strip():
            raise InvalidInput("Kafka bootstrap servers are not configured")
        if self.max_workers < 1:
            raise InvalidInput(f"max_workers must be >= 1, got {self.max_workers}")
        self.partition.validate()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceConfig":
        """
        Build a configuration from RANGEKIT_* environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Validated ServiceConfig

        Raises:
            InvalidInput: If a required variable is missing or a value is malformed
        """
        env = os.environ if environ is None else environ

        def _get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return default
            return value.strip()

        def _int(name: str, default: int) -> int:
            raw = _get(name)
            if raw is None:
                return default
            try:
                return int(raw)
            except ValueError as exc:
                raise InvalidInput(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc

        registry = _get("REGISTRY_PATH")
        partition = PartitionConfig(
            partition_target_size_bytes=_int("PARTITION_SIZE", DEFAULT_PARTITION_TARGET_SIZE),
            boundary_probe_window_bytes=_int("PROBE_WINDOW", DEFAULT_PROBE_WINDOW),
            probe_max_attempts=_int("PROBE_ATTEMPTS", 1),
        )
        config = cls(
            topic=_get("TOPIC", "") or "",
            bootstrap_servers=_get("BOOTSTRAP_SERVERS", "") or "",
            aws_region=_get("AWS_REGION"),
            s3_endpoint_url=_get("S3_ENDPOINT"),
            max_workers=_int("MAX_WORKERS", 4),
            registry_path=Path(registry).expanduser() if registry else None,
            partition=partition,
        )
        config.validate()
        return config
