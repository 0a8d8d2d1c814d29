"""
Opt-Out Ledger
==============

Durable set of E.164 numbers that must never be messaged. Callers
normalize before calling; the ledger stores keys exactly as given.
"""

import logging
import sqlite3
from dataclasses import asdict, dataclass
from typing import List, Optional

from .database import Database, utc_now

logger = logging.getLogger(__name__)

SOURCE_INBOUND_STOP = "inbound_sms_stop"
SOURCE_MANUAL = "manual"


@dataclass
class OptOut:
    """Opt-out record from database."""
    phone_e164: str
    source: str
    note: Optional[str] = None
    created_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


class OptOutLedger:
    """
    Usage:
        ledger = OptOutLedger(db)
        ledger.add("+447400123456", source="manual", note="asked by phone")
        ledger.is_opted_out("+447400123456")  # True
    """

    def __init__(self, db: Database):
        self._db = db

    def is_opted_out(self, phone_e164: str) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM sms_opt_out WHERE phone_e164 = ? LIMIT 1", (phone_e164,)
            ).fetchone()
            return row is not None

    def add(self, phone_e164: str, source: str = SOURCE_MANUAL, note: Optional[str] = None) -> None:
        """Insert, or refresh source/note/timestamp of an existing record."""
        with self._db.connection() as conn:
            conn.execute(
                """
                INSERT INTO sms_opt_out (phone_e164, created_at, source, note)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(phone_e164) DO UPDATE SET
                    source = excluded.source,
                    note = excluded.note,
                    created_at = excluded.created_at
                """,
                (phone_e164, utc_now(), source, note or None),
            )
        logger.info(f"Opted out {phone_e164} (source: {source})")

    def remove(self, phone_e164: str) -> bool:
        with self._db.connection() as conn:
            cursor = conn.execute("DELETE FROM sms_opt_out WHERE phone_e164 = ?", (phone_e164,))
            removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Removed opt-out for {phone_e164}")
        return removed

    def get(self, phone_e164: str) -> Optional[OptOut]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM sms_opt_out WHERE phone_e164 = ?", (phone_e164,)
            ).fetchone()
            return self._row_to_opt_out(row) if row else None

    def list(self, limit: int = 100) -> List[OptOut]:
        """Most recent first."""
        with self._db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM sms_opt_out ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
            return [self._row_to_opt_out(row) for row in rows]

    def search(self, query: str, limit: int = 100) -> List[OptOut]:
        """Substring match on phone or note."""
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        term = f"%{escaped}%"
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM sms_opt_out
                WHERE phone_e164 LIKE ? ESCAPE '\\' OR note LIKE ? ESCAPE '\\'
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (term, term, limit),
            ).fetchall()
            return [self._row_to_opt_out(row) for row in rows]

    def count(self) -> int:
        with self._db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM sms_opt_out").fetchone()[0]

    def _row_to_opt_out(self, row: sqlite3.Row) -> OptOut:
        return OptOut(
            phone_e164=row["phone_e164"],
            source=row["source"],
            note=row["note"],
            created_at=row["created_at"] or "",
        )
