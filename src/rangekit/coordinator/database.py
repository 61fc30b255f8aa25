"""SQLite schema for the run registry."""

from __future__ import annotations

import sqlite3
from pathlib import Path

__all__ = ["init_registry_database"]


def init_registry_database(db_path: Path) -> None:
    """
    Initialize the run registry schema.

    Creates the runs table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with sqlite3.connect(str(db_path), timeout=10.0) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                source_id TEXT NOT NULL,
                object_key TEXT NOT NULL,
                status TEXT NOT NULL,
                partition_count INTEGER DEFAULT 0,
                failed_publish_count INTEGER DEFAULT 0,
                cause TEXT,
                attempts INTEGER DEFAULT 1,
                started_at REAL,
                finished_at REAL,
                skip_count INTEGER DEFAULT 0
            )
        """)

        # Index on status for recovery scans
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_runs_status
            ON runs(status)
        """)

        conn.commit()
