"""Run coordination and run history."""

from .job import JobCoordinator, make_partitioner_factory
from .registry import InMemoryRunRegistry, RunRecord, SqliteRunRegistry

__all__ = [
    "JobCoordinator",
    "make_partitioner_factory",
    "InMemoryRunRegistry",
    "SqliteRunRegistry",
    "RunRecord",
]
