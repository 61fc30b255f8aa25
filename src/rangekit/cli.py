"""Command-line entry point: partition one object or every object in a notification."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

import setproctitle

from rangekit.config import DEFAULT_PARTITION_TARGET_SIZE, DEFAULT_PROBE_WINDOW, PartitionConfig, ServiceConfig
from rangekit.coordinator import InMemoryRunRegistry, JobCoordinator, SqliteRunRegistry, make_partitioner_factory
from rangekit.errors import InvalidInput
from rangekit.events import derive_run_id, parse_notification
from rangekit.logger import setup_logger
from rangekit.reporter import print_run_header, print_run_summary
from rangekit.types import RunOutcome, RunRequest

logger = logging.getLogger(__name__)

__all__ = ["main", "create_parser", "build_config", "run_requests"]


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rangekit",
        description="Split S3 objects into record-aligned byte ranges and publish them to Kafka.",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--topic", help="Kafka topic for partition messages (env: RANGEKIT_TOPIC)")
    common.add_argument("--bootstrap-servers", help="Kafka bootstrap servers (env: RANGEKIT_BOOTSTRAP_SERVERS)")
    common.add_argument("--region", help="AWS region (env: RANGEKIT_AWS_REGION)")
    common.add_argument("--endpoint-url", help="S3-compatible endpoint URL (env: RANGEKIT_S3_ENDPOINT)")
    common.add_argument("--partition-size", type=int, default=None,
                        help=f"Target partition size in bytes (default: {DEFAULT_PARTITION_TARGET_SIZE})")
    common.add_argument("--window", type=int, default=None,
                        help=f"Boundary probe window in bytes (default: {DEFAULT_PROBE_WINDOW})")
    common.add_argument("--probe-attempts", type=int, default=None,
                        help="Read attempts per boundary probe before falling back (default: 1)")
    common.add_argument("--workers", type=int, default=None, help="Concurrent runs (default: 4)")
    common.add_argument("--registry", type=Path, default=None,
                        help="SQLite run registry path (default: in-memory)")
    common.add_argument("--log-dir", type=Path, default=None, help="Directory for log files (default: console)")
    common.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO",
                        help="Logging level (default: INFO)")
    common.add_argument("--progress", action="store_true", help="Show a progress bar per run")

    sub = parser.add_subparsers(dest="command", required=True)

    part = sub.add_parser("partition", parents=[common], help="Partition a single object")
    part.add_argument("--bucket", required=True, help="Source bucket")
    part.add_argument("--key", required=True, help="Object key")
    part.add_argument("--run-id", default=None, help="Run id (default: current time in milliseconds)")

    notify = sub.add_parser("notify", parents=[common], help="Partition every object in an S3 notification")
    notify.add_argument("message", help="File holding the notification JSON, or '-' for stdin")

    return parser


def build_config(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """
    Merge command-line options over RANGEKIT_* environment variables.

    Raises:
        InvalidInput: If the merged configuration is incomplete or invalid
    """
    env = dict(os.environ if environ is None else environ)
    overrides = {
        "RANGEKIT_TOPIC": args.topic,
        "RANGEKIT_BOOTSTRAP_SERVERS": args.bootstrap_servers,
        "RANGEKIT_AWS_REGION": args.region,
        "RANGEKIT_S3_ENDPOINT": args.endpoint_url,
        "RANGEKIT_PARTITION_SIZE": args.partition_size,
        "RANGEKIT_PROBE_WINDOW": args.window,
        "RANGEKIT_PROBE_ATTEMPTS": args.probe_attempts,
        "RANGEKIT_MAX_WORKERS": args.workers,
        "RANGEKIT_REGISTRY_PATH": args.registry,
    }
    for name, value in overrides.items():
        if value is not None:
            env[name] = str(value)
    return ServiceConfig.from_env(env)


def run_requests(
        requests: Sequence[RunRequest],
        config: ServiceConfig,
        *,
        store=None,
        producer=None,
        show_progress: bool = False,
) -> List[RunOutcome]:
    """
    Submit every request through a JobCoordinator and report the results.

    Args:
        requests: Runs to execute
        config: Service configuration
        store: Object store (default: S3 from config)
        producer: Kafka producer (default: created from config, closed afterwards)
        show_progress: Show a tqdm bar per run

    Returns:
        Outcomes in request order
    """
    from rangekit.publish.kafka import create_producer
    from rangekit.storage import S3ObjectStore, create_s3_client

    owns_producer = producer is None
    if store is None:
        store = S3ObjectStore(create_s3_client(config.aws_region, config.s3_endpoint_url))
    if producer is None:
        producer = create_producer(config.bootstrap_servers)

    if config.registry_path is not None:
        registry = SqliteRunRegistry(config.registry_path)
        registry.recover_interrupted()
    else:
        registry = InMemoryRunRegistry()

    factory = make_partitioner_factory(
        store, producer, config.topic, config.partition, show_progress=show_progress
    )

    start_time = datetime.now()
    print_run_header(start_time, requests, config.partition, config.topic, config.bootstrap_servers)

    try:
        with JobCoordinator(factory, registry, max_workers=config.max_workers) as coordinator:
            if len(requests) == 1:
                outcomes = [coordinator.submit(requests[0])]
            else:
                futures = [coordinator.submit_async(request) for request in requests]
                outcomes = [future.result() for future in futures]
    finally:
        if owns_producer:
            producer.close()

    print_run_summary(outcomes, start_time, datetime.now())
    return outcomes


def _read_message(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logger(args.log_dir, level=getattr(logging, args.log_level), console=True)
    setproctitle.setproctitle("rk:main")

    try:
        config = build_config(args)
        if args.command == "partition":
            run_id = args.run_id or derive_run_id(args.bucket, args.key)
            requests = [RunRequest(source_id=args.bucket, object_key=args.key, run_id=run_id)]
        else:
            requests = parse_notification(_read_message(args.message))
    except (InvalidInput, OSError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    if not requests:
        logger.info("Nothing to partition")
        return 0

    if args.progress and len(requests) > 1:
        # Concurrent bars would interleave on one terminal.
        config = replace(config, max_workers=1)

    outcomes = run_requests(requests, config, show_progress=args.progress)
    return 0 if all(outcome.ok for outcome in outcomes) else 1


if __name__ == "__main__":
    sys.exit(main())
