"""Size probing, boundary alignment and the partitioning walk."""

from .boundary import BoundaryResolver
from .partitioner import PlannedRange, RangePartitioner, plan_partitions
from .size_probe import SizeProbe

__all__ = [
    "SizeProbe",
    "BoundaryResolver",
    "RangePartitioner",
    "PlannedRange",
    "plan_partitions",
]
