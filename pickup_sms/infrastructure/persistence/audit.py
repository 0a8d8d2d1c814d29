"""
Audit Stores - Send Log and Job Run Summaries
==============================================

The send log is append-only: rows are inserted, never updated or deleted.
Run summaries are created at job start with zero counts and stamped when
the run finishes or aborts; a NULL finished_at marks an interrupted run.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from ...domain.models import OutcomeStatus
from .database import Database, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SendLogEntry:
    feature: str
    booking_id: Optional[str]
    phone: str
    status: str
    pickup_time: Optional[str] = None
    provider_message_id: Optional[str] = None
    used_fallback: bool = False
    error: Optional[str] = None
    created_at: str = ""
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class JobRunSummary:
    id: int
    feature: str
    started_at: str
    finished_at: Optional[str] = None
    dry_run: bool = False
    fetched_count: int = 0
    sent_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def to_dict(self) -> dict:
        return asdict(self)


class SendLog:
    """Append-only per-candidate outcome log."""

    def __init__(self, db: Database):
        self._db = db

    def append(
        self,
        feature: str,
        booking_id: Optional[str],
        phone: str,
        status: OutcomeStatus,
        pickup_time: Optional[str] = None,
        provider_message_id: Optional[str] = None,
        used_fallback: bool = False,
        error: Optional[str] = None,
    ) -> int:
        with self._db.connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sms_send_log
                    (feature, booking_id, phone, pickup_time, status,
                     provider_message_id, used_fallback, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    feature,
                    str(booking_id) if booking_id is not None else None,
                    phone or "unknown",
                    pickup_time,
                    OutcomeStatus(status).value,
                    provider_message_id,
                    1 if used_fallback else 0,
                    error,
                    utc_now(),
                ),
            )
            return cursor.lastrowid

    def recent(self, feature: Optional[str] = None, limit: int = 100) -> List[SendLogEntry]:
        """Newest first; all features when feature is None."""
        query = "SELECT * FROM sms_send_log"
        params: list = []
        if feature:
            query += " WHERE feature = ?"
            params.append(feature)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._db.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_entry(row) for row in rows]

    def status_counts(self, feature: str) -> Dict[str, int]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM sms_send_log WHERE feature = ? GROUP BY status",
                (feature,),
            ).fetchall()
            return {row["status"]: row["n"] for row in rows}

    def for_booking(self, feature: str, booking_id: str) -> List[SendLogEntry]:
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sms_send_log WHERE feature = ? AND booking_id = ? ORDER BY id",
                (feature, str(booking_id)),
            ).fetchall()
            return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: sqlite3.Row) -> SendLogEntry:
        return SendLogEntry(
            id=row["id"],
            feature=row["feature"],
            booking_id=row["booking_id"],
            phone=row["phone"],
            pickup_time=row["pickup_time"],
            status=row["status"],
            provider_message_id=row["provider_message_id"],
            used_fallback=bool(row["used_fallback"]),
            error=row["error"],
            created_at=row["created_at"],
        )


class JobRunStore:
    """One summary row per job run, keyed by run id."""

    def __init__(self, db: Database):
        self._db = db

    def start(self, feature: str, dry_run: bool = False) -> int:
        with self._db.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO job_run_summary (feature, started_at, dry_run) VALUES (?, ?, ?)",
                (feature, utc_now(), 1 if dry_run else 0),
            )
            return cursor.lastrowid

    COUNT_FIELDS = ("fetched_count", "sent_count", "skipped_count", "failed_count")

    def update(self, run_id: int, **counts: int) -> None:
        """Set any of fetched_count/sent_count/skipped_count/failed_count."""
        self._write(run_id, self._checked(counts))

    def finish(self, run_id: int, error: Optional[str] = None, **counts: int) -> None:
        """Stamp end time, final counts and the terminal error (if any)."""
        updates = self._checked(counts)
        updates["finished_at"] = utc_now()
        updates["error"] = error
        self._write(run_id, updates)

    def _checked(self, counts: dict) -> dict:
        unknown = set(counts) - set(self.COUNT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown run summary fields: {sorted(unknown)}")
        return dict(counts)

    def _write(self, run_id: int, updates: dict) -> None:
        if not updates:
            return
        set_clause = ", ".join(f"{k} = ?" for k in updates.keys())
        values = list(updates.values()) + [run_id]
        with self._db.connection() as conn:
            conn.execute(f"UPDATE job_run_summary SET {set_clause} WHERE id = ?", values)

    def get(self, run_id: int) -> Optional[JobRunSummary]:
        with self._db.connection() as conn:
            row = conn.execute("SELECT * FROM job_run_summary WHERE id = ?", (run_id,)).fetchone()
            return self._row_to_summary(row) if row else None

    def latest(self, feature: str) -> Optional[JobRunSummary]:
        with self._db.connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM job_run_summary
                WHERE feature = ?
                ORDER BY started_at DESC, id DESC
                LIMIT 1
                """,
                (feature,),
            ).fetchone()
            return self._row_to_summary(row) if row else None

    def _row_to_summary(self, row: sqlite3.Row) -> JobRunSummary:
        return JobRunSummary(
            id=row["id"],
            feature=row["feature"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            dry_run=bool(row["dry_run"]),
            fetched_count=row["fetched_count"],
            sent_count=row["sent_count"],
            skipped_count=row["skipped_count"],
            failed_count=row["failed_count"],
            error=row["error"],
        )
