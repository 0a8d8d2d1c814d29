"""
SQLite Database - Local Durable Stores
======================================

One SQLite file holds five independent tables:
- sms_opt_out       opt-out ledger keyed by E.164 phone
- sms_send_log      append-only per-candidate outcomes
- job_run_summary   one row per job run
- sms_send_guard    (feature, booking_id) already-sent markers
- job_lock          run-scoped advisory locks keyed by job name

Each write touches a single row in a single table. A fresh connection is
opened per operation, so overlapping runs on different threads are safe.
"""

import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Union

logger = logging.getLogger(__name__)

DATABASE_FILE = "data/optouts.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS sms_opt_out (
    phone_e164 TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    source TEXT NOT NULL,
    note TEXT
);
CREATE INDEX IF NOT EXISTS idx_sms_opt_out_created_at ON sms_opt_out(created_at);

CREATE TABLE IF NOT EXISTS sms_send_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feature TEXT NOT NULL,
    booking_id TEXT,
    phone TEXT NOT NULL,
    pickup_time TEXT,
    status TEXT NOT NULL,
    provider_message_id TEXT,
    used_fallback INTEGER NOT NULL DEFAULT 0,
    error TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sms_log_feature ON sms_send_log(feature);
CREATE INDEX IF NOT EXISTS idx_sms_log_created_at ON sms_send_log(created_at);
CREATE INDEX IF NOT EXISTS idx_sms_log_booking_id ON sms_send_log(booking_id);

CREATE TABLE IF NOT EXISTS job_run_summary (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    feature TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    dry_run INTEGER NOT NULL DEFAULT 0,
    fetched_count INTEGER NOT NULL DEFAULT 0,
    sent_count INTEGER NOT NULL DEFAULT 0,
    skipped_count INTEGER NOT NULL DEFAULT 0,
    failed_count INTEGER NOT NULL DEFAULT 0,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_job_run_feature ON job_run_summary(feature);
CREATE INDEX IF NOT EXISTS idx_job_run_started_at ON job_run_summary(started_at);

CREATE TABLE IF NOT EXISTS sms_send_guard (
    feature TEXT NOT NULL,
    booking_id TEXT NOT NULL,
    phone_e164 TEXT NOT NULL,
    claimed_at TEXT NOT NULL,
    PRIMARY KEY (feature, booking_id)
);

CREATE TABLE IF NOT EXISTS job_lock (
    name TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    acquired_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);
"""


def utc_now() -> str:
    """ISO-8601 UTC timestamp; sorts lexically in time order."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """
    SQLite database for the opt-out ledger, audit logs and guards.

    Usage:
        db = Database("data/optouts.db")
        db.init()

        with db.connection() as conn:
            conn.execute("SELECT 1")
    """

    def __init__(self, db_path: Union[str, Path] = DATABASE_FILE, timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with context manager; commits on success."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init(self) -> "Database":
        """Create the data directory and all tables."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
            self._migrate(conn)
        logger.info(f"SQLite database initialized: {self.db_path}")
        return self

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Add columns missing from databases created by older releases."""
        existing = {row[1] for row in conn.execute("PRAGMA table_info(sms_send_log)").fetchall()}

        migrations = {
            "provider_message_id": "ALTER TABLE sms_send_log ADD COLUMN provider_message_id TEXT",
            "used_fallback": "ALTER TABLE sms_send_log ADD COLUMN used_fallback INTEGER NOT NULL DEFAULT 0",
        }

        for col, sql in migrations.items():
            if col not in existing:
                conn.execute(sql)
                logger.info(f"Migrated: added '{col}' column to sms_send_log")
