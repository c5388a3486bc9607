"""
SQLite storage backend

Reference implementation of the backend port. The composite primary key
(stream_id, version) is the write condition: a second insert for the same
key fails the whole transaction. A covering index on
(marker, timestamp, stream_id, version) serves the global time-ordered view.

Result sets are read with keyset pagination, one short-lived connection per
page, so an abandoned iteration holds no connection or lock.
"""

import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from event_ledger.kernel.errors import ConcurrencyConflict, StorageFailure
from event_ledger.kernel.logging import get_logger
from event_ledger.kernel.retry import retry_on_sqlite_lock
from event_ledger.storage.records import EventRecord

logger = get_logger(__name__)

_COLUMNS = "stream_id, version, marker, timestamp, payload"


class SQLiteEventBackend:
    """
    SQLite-based event backend

    Uses WAL mode for crash safety and concurrent readers.

    Schema:
    - events table: append-only, PRIMARY KEY (stream_id, version)
    - idx_events_marker_time: (marker, timestamp, stream_id, version)
    """

    def __init__(self, db_path: str | Path, page_size: int = 100) -> None:
        """
        Initialize backend, creating the schema if needed

        Args:
            db_path: Path to SQLite database file
            page_size: Rows fetched per query round trip
        """
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")
        self.db_path = Path(db_path)
        self.page_size = page_size
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS events (
                        stream_id TEXT NOT NULL,
                        version INTEGER NOT NULL,
                        marker TEXT NOT NULL,
                        timestamp INTEGER NOT NULL,
                        payload TEXT NOT NULL,

                        PRIMARY KEY (stream_id, version)
                    )
                """)
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_events_marker_time "
                    "ON events(marker, timestamp, stream_id, version)"
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StorageFailure(
                "initialize_schema", f"Unable to prepare {self.db_path}: {e}"
            ) from e

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def transact_put(self, records: Sequence[EventRecord]) -> None:
        """
        Insert all records in one transaction

        Raises:
            ConcurrencyConflict: If any (stream_id, version) already exists
            StorageFailure: On any other database error
        """
        if not records:
            return

        try:
            self._insert_all(records)
        except sqlite3.IntegrityError as e:
            raise ConcurrencyConflict(self._existing_keys(records)) from e
        except sqlite3.Error as e:
            raise StorageFailure(
                "transact_put", f"Failed to write {len(records)} records: {e}"
            ) from e

    @retry_on_sqlite_lock()
    def _insert_all(self, records: Sequence[EventRecord]) -> None:
        with self._connect() as conn:
            try:
                conn.executemany(
                    f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    [
                        (r.stream_id, r.version, r.marker, r.timestamp, r.payload)
                        for r in records
                    ],
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

    def _existing_keys(self, records: Sequence[EventRecord]) -> tuple[tuple[str, int], ...]:
        """Which of the batch keys are already taken (best effort, for error reporting)"""
        try:
            with self._connect() as conn:
                found = []
                for record in records:
                    row = conn.execute(
                        "SELECT 1 FROM events WHERE stream_id = ? AND version = ?",
                        record.key,
                    ).fetchone()
                    if row is not None:
                        found.append(record.key)
                return tuple(found)
        except sqlite3.Error as e:
            logger.warning("Could not identify conflicting keys", error=str(e))
            return ()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_stream(
        self, stream_id: str, after_version: int | None = None
    ) -> Iterator[EventRecord]:
        last_version = -1 if after_version is None else after_version
        while True:
            rows = self._fetch_page(
                "query_stream",
                f"""
                SELECT {_COLUMNS} FROM events
                WHERE stream_id = ? AND version > ?
                ORDER BY version ASC
                LIMIT ?
                """,
                (stream_id, last_version, self.page_size),
            )
            for row in rows:
                yield self._row_to_record(row)
            if len(rows) < self.page_size:
                return
            last_version = rows[-1]["version"]

    def query_time_range(
        self, marker: str, start: int, end: int
    ) -> Iterator[EventRecord]:
        # Keyset position; versions are non-negative so -1 sorts before every row
        position: tuple[int, str, int] = (start, "", -1)
        while True:
            rows = self._fetch_page(
                "query_time_range",
                f"""
                SELECT {_COLUMNS} FROM events
                WHERE marker = ?
                  AND timestamp BETWEEN ? AND ?
                  AND (timestamp, stream_id, version) > (?, ?, ?)
                ORDER BY timestamp ASC, stream_id ASC, version ASC
                LIMIT ?
                """,
                (marker, start, end, *position, self.page_size),
            )
            for row in rows:
                yield self._row_to_record(row)
            if len(rows) < self.page_size:
                return
            last = rows[-1]
            position = (last["timestamp"], last["stream_id"], last["version"])

    def _fetch_page(
        self, operation: str, query: str, params: tuple[object, ...]
    ) -> list[sqlite3.Row]:
        try:
            return self._execute_read(query, params)
        except sqlite3.Error as e:
            raise StorageFailure(operation, f"Failed to read events: {e}") from e

    @retry_on_sqlite_lock()
    def _execute_read(self, query: str, params: tuple[object, ...]) -> list[sqlite3.Row]:
        with self._connect() as conn:
            return conn.execute(query, params).fetchall()

    def _row_to_record(self, row: sqlite3.Row) -> EventRecord:
        return EventRecord(
            stream_id=row["stream_id"],
            version=row["version"],
            marker=row["marker"],
            timestamp=row["timestamp"],
            payload=row["payload"],
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def count_records(self) -> int:
        """Total number of stored records"""
        return self._fetch_page("count_records", "SELECT COUNT(*) FROM events", ())[0][0]

    def count_streams(self) -> int:
        """Number of distinct streams"""
        return self._fetch_page(
            "count_streams", "SELECT COUNT(DISTINCT stream_id) FROM events", ()
        )[0][0]
