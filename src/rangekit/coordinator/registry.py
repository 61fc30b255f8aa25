"""Run registries: the record of which run ids are in flight or finished."""

from __future__ import annotations

import logging
import random
import sqlite3
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional

from rangekit.coordinator.database import init_registry_database
from rangekit.types import RunOutcome, RunRequest, RunStatus, SkipReason

logger = logging.getLogger(__name__)

__all__ = ["RunRecord", "InMemoryRunRegistry", "SqliteRunRegistry"]


@dataclass(frozen=True)
class RunRecord:
    """Registry entry for one run id."""

    run_id: str
    source_id: str
    object_key: str
    status: RunStatus
    partition_count: int = 0
    failed_publish_count: int = 0
    cause: Optional[str] = None
    attempts: int = 1
    skip_count: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


def _skip_reason(status: RunStatus) -> Optional[SkipReason]:
    if status is RunStatus.RUNNING:
        return SkipReason.ALREADY_RUNNING
    if status is RunStatus.COMPLETED:
        return SkipReason.ALREADY_COMPLETED
    return None


class InMemoryRunRegistry:
    """Process-local registry guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, RunRecord] = {}

    def claim(self, request: RunRequest) -> Optional[SkipReason]:
        """
        Mark a run as running unless it is already running or completed.

        Returns:
            None if the caller now owns the run, otherwise the reason to skip it
        """
        with self._lock:
            existing = self._records.get(request.run_id)
            if existing is not None:
                reason = _skip_reason(existing.status)
                if reason is not None:
                    return reason
                attempts = existing.attempts + 1
                skip_count = existing.skip_count
            else:
                attempts = 1
                skip_count = 0

            self._records[request.run_id] = RunRecord(
                run_id=request.run_id,
                source_id=request.source_id,
                object_key=request.object_key,
                status=RunStatus.RUNNING,
                attempts=attempts,
                skip_count=skip_count,
                started_at=time.time(),
            )
            return None

    def finish(self, outcome: RunOutcome) -> None:
        """Record the terminal outcome of a run this process claimed."""
        with self._lock:
            record = self._records.get(outcome.run_id)
            if record is None:
                logger.warning("Finishing unknown run %s", outcome.run_id)
                return
            self._records[outcome.run_id] = replace(
                record,
                status=outcome.status,
                partition_count=outcome.partition_count,
                failed_publish_count=outcome.failed_publish_count,
                cause=outcome.cause,
                finished_at=time.time(),
            )

    def record_skip(self, outcome: RunOutcome) -> None:
        """Count a duplicate submission against the run it collided with."""
        with self._lock:
            record = self._records.get(outcome.run_id)
            if record is None:
                logger.warning("Skipped unknown run %s", outcome.run_id)
                return
            self._records[outcome.run_id] = replace(record, skip_count=record.skip_count + 1)

    def get(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            return self._records.get(run_id)

    def list_runs(self, status: Optional[RunStatus] = None) -> List[RunRecord]:
        with self._lock:
            records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status is status]
        return sorted(records, key=lambda r: r.started_at or 0.0)


class SqliteRunRegistry:
    """
    Registry persisted in SQLite so that duplicate notifications are
    recognised across processes and restarts.

    Claims run inside ``BEGIN IMMEDIATE`` transactions, so two processes
    racing for the same run id cannot both win.
    """

    def __init__(self, db_path: Path, *, max_retries: int = 5):
        self.db_path = Path(db_path)
        self.max_retries = max_retries
        init_registry_database(self.db_path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), timeout=5.0, isolation_level=None)

    def _with_retries(self, action: str, fn):
        for attempt in range(self.max_retries):
            try:
                return fn()
            except sqlite3.OperationalError as e:
                if "locked" in str(e) and attempt < self.max_retries - 1:
                    # Exponential backoff with jitter
                    base_delay = 0.1 * (2 ** attempt)
                    jitter = random.uniform(0, base_delay * 0.5)
                    time.sleep(base_delay + jitter)
                    continue
                logger.error("Run registry %s failed after %d attempts: %s", action, attempt + 1, e)
                raise
        raise RuntimeError(f"Run registry {action} failed")

    def claim(self, request: RunRequest) -> Optional[SkipReason]:
        """
        Mark a run as running unless it is already running or completed.

        Returns:
            None if the caller now owns the run, otherwise the reason to skip it
        """
        def _claim() -> Optional[SkipReason]:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(
                    "SELECT status FROM runs WHERE run_id = ?", (request.run_id,)
                ).fetchone()

                if row is not None:
                    reason = _skip_reason(RunStatus(row[0]))
                    if reason is not None:
                        conn.execute("ROLLBACK")
                        return reason
                    conn.execute(
                        """
                        UPDATE runs
                        SET status = ?, partition_count = 0, failed_publish_count = 0,
                            cause = NULL, attempts = attempts + 1,
                            started_at = ?, finished_at = NULL
                        WHERE run_id = ?
                        """,
                        (RunStatus.RUNNING.value, time.time(), request.run_id)
                    )
                else:
                    conn.execute(
                        """
                        INSERT INTO runs (run_id, source_id, object_key, status, started_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (request.run_id, request.source_id, request.object_key,
                         RunStatus.RUNNING.value, time.time())
                    )
                conn.execute("COMMIT")
                return None
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()

        return self._with_retries("claim", _claim)

    def finish(self, outcome: RunOutcome) -> None:
        """Record the terminal outcome of a run this process claimed."""
        def _finish() -> None:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    """
                    UPDATE runs
                    SET status = ?, partition_count = ?, failed_publish_count = ?,
                        cause = ?, finished_at = ?
                    WHERE run_id = ?
                    """,
                    (outcome.status.value, outcome.partition_count, outcome.failed_publish_count,
                     outcome.cause, time.time(), outcome.run_id)
                )
                if cursor.rowcount == 0:
                    logger.warning("Finishing unknown run %s", outcome.run_id)
            finally:
                conn.close()

        self._with_retries("finish", _finish)

    def record_skip(self, outcome: RunOutcome) -> None:
        """Count a duplicate submission against the run it collided with."""
        def _record_skip() -> None:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "UPDATE runs SET skip_count = skip_count + 1 WHERE run_id = ?",
                    (outcome.run_id,)
                )
                if cursor.rowcount == 0:
                    logger.warning("Skipped unknown run %s", outcome.run_id)
            finally:
                conn.close()

        self._with_retries("record_skip", _record_skip)

    def get(self, run_id: str) -> Optional[RunRecord]:
        with sqlite3.connect(str(self.db_path), timeout=10.0) as conn:
            row = conn.execute(
                """
                SELECT run_id, source_id, object_key, status, partition_count,
                       failed_publish_count, cause, attempts, started_at, finished_at, skip_count
                FROM runs WHERE run_id = ?
                """,
                (run_id,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list_runs(self, status: Optional[RunStatus] = None) -> List[RunRecord]:
        query = """
            SELECT run_id, source_id, object_key, status, partition_count,
                   failed_publish_count, cause, attempts, started_at, finished_at, skip_count
            FROM runs
        """
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        query += " ORDER BY started_at"
        with sqlite3.connect(str(self.db_path), timeout=10.0) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(row) for row in rows]

    def recover_interrupted(self) -> int:
        """
        Mark runs left 'running' by a dead process as aborted.

        Call at startup, before any run is submitted; otherwise their run
        ids would be skipped as already running forever.

        Returns:
            Number of runs reset
        """
        with sqlite3.connect(str(self.db_path), timeout=10.0) as conn:
            cursor = conn.execute(
                """
                UPDATE runs
                SET status = ?, cause = 'interrupted', finished_at = ?
                WHERE status = ?
                """,
                (RunStatus.ABORTED.value, time.time(), RunStatus.RUNNING.value)
            )
            conn.commit()
            count = cursor.rowcount

        if count:
            logger.warning("Marked %d interrupted runs as aborted", count)
        return count

    @staticmethod
    def _row_to_record(row) -> RunRecord:
        return RunRecord(
            run_id=row[0],
            source_id=row[1],
            object_key=row[2],
            status=RunStatus(row[3]),
            partition_count=row[4] or 0,
            failed_publish_count=row[5] or 0,
            cause=row[6],
            attempts=row[7] or 1,
            started_at=row[8],
            finished_at=row[9],
            skip_count=row[10] or 0,
        )
