"""rangekit - split large S3 objects into record-aligned byte ranges and publish them to Kafka."""

from rangekit.config import PartitionConfig, ServiceConfig
from rangekit.coordinator import JobCoordinator, make_partitioner_factory
from rangekit.partition import BoundaryResolver, RangePartitioner, SizeProbe
from rangekit.publish import PublishSink
from rangekit.types import (
    PartitionDescriptor,
    RunOutcome,
    RunRequest,
    RunStatus,
    SkipReason,
)

__version__ = "0.1.0"

__all__ = [
    "PartitionConfig",
    "ServiceConfig",
    "JobCoordinator",
    "make_partitioner_factory",
    "SizeProbe",
    "BoundaryResolver",
    "RangePartitioner",
    "PublishSink",
    "PartitionDescriptor",
    "RunRequest",
    "RunOutcome",
    "RunStatus",
    "SkipReason",
]
