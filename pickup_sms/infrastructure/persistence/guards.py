"""
Send Guard & Job Lock
=====================

SendGuard: one durable marker per (feature, booking_id). Claiming is an
atomic INSERT OR IGNORE, so two overlapping runs cannot both win the same
booking.

JobLock: advisory lock keyed by job name, held for a run's duration.
Locks carry an expiry so a crashed process does not block a job forever.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

from .database import Database, utc_now

logger = logging.getLogger(__name__)


class JobAlreadyRunningError(RuntimeError):
    """Another live run holds the lock for this job."""

    def __init__(self, name: str, owner: Optional[str] = None):
        self.name = name
        self.owner = owner
        super().__init__(f"Job '{name}' is already running")


class SendGuard:
    """Per-booking idempotency markers."""

    def __init__(self, db: Database):
        self._db = db

    def claim(self, feature: str, booking_id: str, phone_e164: str) -> bool:
        """Return True if this caller now owns the booking, False if already claimed."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO sms_send_guard (feature, booking_id, phone_e164, claimed_at)
                VALUES (?, ?, ?, ?)
                """,
                (feature, str(booking_id), phone_e164, utc_now()),
            )
            return cursor.rowcount == 1

    def release(self, feature: str, booking_id: str) -> None:
        """Drop a claim so a later run may retry the booking."""
        with self._db.connection() as conn:
            conn.execute(
                "DELETE FROM sms_send_guard WHERE feature = ? AND booking_id = ?",
                (feature, str(booking_id)),
            )

    def is_claimed(self, feature: str, booking_id: str) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM sms_send_guard WHERE feature = ? AND booking_id = ? LIMIT 1",
                (feature, str(booking_id)),
            ).fetchone()
            return row is not None


class JobLock:
    """
    Usage:
        lock = JobLock(db, ttl_seconds=7200)
        with lock.hold("daily_review_request"):
            ...  # raises JobAlreadyRunningError if held elsewhere
    """

    def __init__(self, db: Database, ttl_seconds: int = 7200):
        self._db = db
        self._ttl = timedelta(seconds=ttl_seconds)

    def acquire(self, name: str, owner: str) -> bool:
        now = datetime.now(timezone.utc)
        expires = (now + self._ttl).isoformat(timespec="microseconds")
        with self._db.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                "DELETE FROM job_lock WHERE name = ? AND expires_at < ?",
                (name, now.isoformat(timespec="microseconds")),
            )
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO job_lock (name, owner, acquired_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (name, owner, now.isoformat(timespec="microseconds"), expires),
            )
            return cursor.rowcount == 1

    def release(self, name: str, owner: str) -> None:
        with self._db.connection() as conn:
            conn.execute("DELETE FROM job_lock WHERE name = ? AND owner = ?", (name, owner))

    def holder(self, name: str) -> Optional[str]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT owner FROM job_lock WHERE name = ?", (name,)).fetchone()
            return row["owner"] if row else None

    @contextmanager
    def hold(self, name: str) -> Iterator[str]:
        owner = uuid.uuid4().hex
        if not self.acquire(name, owner):
            raise JobAlreadyRunningError(name, self.holder(name))
        logger.debug(f"Acquired job lock '{name}' ({owner})")
        try:
            yield owner
        finally:
            self.release(name, owner)
            logger.debug(f"Released job lock '{name}' ({owner})")
