"""
Booking Source - Read-Only Postgres Access
==========================================

Fetches pickup candidates for a time window. Queries are composed with
psycopg.sql from the validated SchemaSettings, so configurable table and
column names are always quoted identifiers and window bounds are always
bound parameters.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from ...domain.models import Candidate, TimeWindow
from ..config import DatabaseSettings, SchemaSettings

logger = logging.getLogger(__name__)


def _col(alias: str, name: str) -> sql.Composed:
    return sql.SQL("{}.{}").format(sql.Identifier(alias), sql.Identifier(name))


class CandidateQueries:
    """Builds the two candidate queries from a schema mapping."""

    def __init__(self, schema: SchemaSettings):
        bad = schema.invalid_identifiers()
        if bad:
            raise ValueError(f"Invalid schema identifiers: {', '.join(bad)}")
        self._schema = schema

    def _select_common(self) -> sql.Composed:
        s = self._schema
        return sql.SQL(", ").join([
            sql.SQL("{} AS first_name").format(_col("u", s.users.first_name)),
            sql.SQL("{} AS last_name").format(_col("u", s.users.last_name)),
            sql.SQL("{} AS phone_number").format(_col("u", s.users.phone_number)),
            sql.SQL("{} AS booking_id").format(_col("b", s.bookings.id)),
            sql.SQL("{} AS pickup").format(_col("b", s.bookings.picked_up_at)),
            sql.SQL("{} AS stashpoint_name").format(_col("sp", s.stashpoints.business_name)),
            sql.SQL("{} AS city").format(_col("l", s.locations.name)),
        ])

    def _customer_joins(self) -> sql.Composed:
        s = self._schema
        return sql.SQL(
            "JOIN {customers} c ON {b_customer} = {c_id} "
            "JOIN {users} u ON {c_user} = {u_id} "
        ).format(
            customers=sql.Identifier(s.customers.table),
            b_customer=_col("b", s.bookings.customer_id),
            c_id=_col("c", s.customers.id),
            users=sql.Identifier(s.users.table),
            c_user=_col("c", s.customers.user_id),
            u_id=_col("u", s.users.id),
        )

    def _location_join(self) -> sql.Composed:
        s = self._schema
        return sql.SQL("LEFT JOIN {locations} l ON {sp_city} = {l_id} ").format(
            locations=sql.Identifier(s.locations.table),
            sp_city=_col("sp", s.stashpoints.nearest_city_id),
            l_id=_col("l", s.locations.id),
        )

    def _window_and_phone(self) -> sql.Composed:
        s = self._schema
        return sql.SQL(
            "{pickup} >= %(start)s AND {pickup} < %(end)s "
            "AND {cancelled} = false "
            "AND {phone} IS NOT NULL AND {phone} <> '' "
        ).format(
            pickup=_col("b", s.bookings.picked_up_at),
            cancelled=_col("b", s.bookings.cancelled),
            phone=_col("u", s.users.phone_number),
        )

    def review_pickups(self) -> sql.Composed:
        """Bookings collected inside the window, any stashpoint type."""
        s = self._schema
        return sql.SQL(
            "SELECT {columns} FROM {bookings} b "
            "{customer_joins}"
            "JOIN {stashpoints} sp ON {b_sp} = {sp_id} "
            "{location_join}"
            "WHERE {window} "
            "ORDER BY {pickup}, {b_id}"
        ).format(
            columns=self._select_common(),
            bookings=sql.Identifier(s.bookings.table),
            customer_joins=self._customer_joins(),
            stashpoints=sql.Identifier(s.stashpoints.table),
            b_sp=_col("b", s.bookings.stashpoint_id),
            sp_id=_col("sp", s.stashpoints.id),
            location_join=self._location_join(),
            window=self._window_and_phone(),
            pickup=_col("b", s.bookings.picked_up_at),
            b_id=_col("b", s.bookings.id),
        )

    def locker_pickups(self) -> sql.Composed:
        """Paid locker-bank bookings whose pickup fell inside the window."""
        s = self._schema
        st = s.storage
        return sql.SQL(
            "SELECT {columns}, {code} AS access_code FROM {bookings} b "
            "{customer_joins}"
            "JOIN {ssb_table} ssb ON ssb.booking_id::text = {b_id}::text "
            "JOIN {ss_table} ss ON ss.id = ssb.storage_space_id "
            "JOIN {codes_table} ssc ON ssc.storage_space_booking_id = ssb.id "
            "JOIN {stashpoints} sp ON ss.stashpoint_id = {sp_id} "
            "{location_join}"
            "WHERE {storage_type} = %(storage_type)s "
            "AND {paid} = true "
            "AND {window} "
            "ORDER BY {pickup}, {b_id}"
        ).format(
            columns=self._select_common(),
            code=_col("ssc", st.locker_code),
            bookings=sql.Identifier(s.bookings.table),
            customer_joins=self._customer_joins(),
            ssb_table=sql.Identifier(st.bookings_table),
            ss_table=sql.Identifier(st.spaces_table),
            codes_table=sql.Identifier(st.codes_table),
            stashpoints=sql.Identifier(s.stashpoints.table),
            sp_id=_col("sp", s.stashpoints.id),
            location_join=self._location_join(),
            storage_type=_col("sp", s.stashpoints.storage_type),
            paid=_col("b", s.bookings.paid),
            window=self._window_and_phone(),
            pickup=_col("b", s.bookings.picked_up_at),
            b_id=_col("b", s.bookings.id),
        )


def row_to_candidate(row: Dict[str, Any]) -> Candidate:
    """Convert a query row to a Candidate."""
    access_code = row.get("access_code")
    return Candidate(
        booking_id=str(row["booking_id"]),
        phone_number=row.get("phone_number"),
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        city=row.get("city"),
        stashpoint_name=row.get("stashpoint_name"),
        pickup=row.get("pickup"),
        access_code=str(access_code) if access_code is not None else None,
    )


class BookingReader:
    """Queries bound to one pooled connection for the length of a run."""

    def __init__(self, conn, queries: CandidateQueries, schema: SchemaSettings):
        self._conn = conn
        self._queries = queries
        self._schema = schema

    def review_pickups(self, window: TimeWindow) -> List[Candidate]:
        return self._fetch(self._queries.review_pickups(), {
            "start": window.start,
            "end": window.end,
        })

    def locker_pickups(self, window: TimeWindow) -> List[Candidate]:
        return self._fetch(self._queries.locker_pickups(), {
            "start": window.start,
            "end": window.end,
            "storage_type": self._schema.locker_storage_type,
        })

    def ping(self) -> bool:
        with self._conn.cursor() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone()[0] == 1

    def _fetch(self, query: sql.Composed, params: Dict[str, Any]) -> List[Candidate]:
        with self._conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [row_to_candidate(row) for row in rows]


class BookingSource:
    """
    Read-only Postgres booking source backed by a connection pool.

    Usage:
        source = BookingSource(settings.database, settings.schema)
        source.open()
        with source.reader() as reader:
            candidates = reader.review_pickups(window)
        source.close()
    """

    def __init__(self, settings: DatabaseSettings, schema: SchemaSettings):
        self._settings = settings
        self._schema = schema
        self._queries = CandidateQueries(schema)
        self._pool: Optional[ConnectionPool] = None

    def open(self) -> None:
        if self._pool is not None:
            return
        if not self._settings.read_url:
            raise RuntimeError("DATABASE_READ_URL (or DATABASE_URL) is not set")

        logger.info("Opening read-only Postgres pool")
        self._pool = ConnectionPool(
            conninfo=self._settings.read_url,
            min_size=1,
            max_size=self._settings.pool_max_size,
            kwargs={
                "sslmode": self._settings.sslmode,
                "connect_timeout": self._settings.connect_timeout_seconds,
            },
            open=False,
        )
        self._pool.open()

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
            logger.info("Postgres pool closed")

    @contextmanager
    def reader(self) -> Iterator[BookingReader]:
        """Borrow one connection; always returned to the pool, even on error."""
        if self._pool is None:
            self.open()
        with self._pool.connection() as conn:
            conn.read_only = True
            yield BookingReader(conn, self._queries, self._schema)

    def ping(self) -> bool:
        with self.reader() as reader:
            return reader.ping()
