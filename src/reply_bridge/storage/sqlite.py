"""SQLite-backed correlation store.

This module provides a durable CorrelationStore so tracked transactions
survive restarts. Uniqueness of active trx_ids is enforced by a UNIQUE index
inside a single ``BEGIN IMMEDIATE`` transaction, which also makes it safe
for several processes sharing one database file.

Schema::

    tracking_records(
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        trx_id TEXT NOT NULL UNIQUE,
        message_handle TEXT NOT NULL,
        destination_address TEXT NOT NULL,
        destination_kind TEXT NOT NULL,
        sent_at INTEGER NOT NULL,      -- microseconds since the Unix epoch
        expires_at INTEGER NOT NULL,
        created_at INTEGER NOT NULL
    )

Timestamps are stored as integer microseconds so range comparisons in SQL
are exact.

Blocking sqlite3 calls run in a worker thread via asyncio.to_thread and are
serialized with a threading.Lock around the shared connection.

Examples:
    >>> store = SQLiteCorrelationStore("./db/tracking.db")
    >>> persisted = await store.create(record)
    >>> await store.close()
"""

import asyncio
import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, TypeVar

from reply_bridge.exceptions import RecordConflictError, StorageError
from reply_bridge.models import Clock, DestinationKind, TrackingRecord, utc_now
from reply_bridge.storage.base import CorrelationStore

T = TypeVar("T")

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MICROSECOND = timedelta(microseconds=1)

_COLUMNS = (
    "trx_id, message_handle, destination_address, destination_kind, "
    "sent_at, expires_at, created_at"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS tracking_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        trx_id TEXT NOT NULL UNIQUE,
        message_handle TEXT NOT NULL,
        destination_address TEXT NOT NULL,
        destination_kind TEXT NOT NULL,
        sent_at INTEGER NOT NULL,
        expires_at INTEGER NOT NULL,
        created_at INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tracking_destination ON tracking_records(destination_address)",
    "CREATE INDEX IF NOT EXISTS idx_tracking_expires_at ON tracking_records(expires_at)",
)


def _to_micros(value: datetime) -> int:
    return (value - _EPOCH) // _MICROSECOND


def _from_micros(value: int) -> datetime:
    return _EPOCH + timedelta(microseconds=value)


def _row_to_record(row: sqlite3.Row) -> TrackingRecord:
    return TrackingRecord(
        trx_id=row["trx_id"],
        message_handle=row["message_handle"],
        destination_address=row["destination_address"],
        destination_kind=DestinationKind(row["destination_kind"]),
        sent_at=_from_micros(row["sent_at"]),
        expires_at=_from_micros(row["expires_at"]),
        created_at=_from_micros(row["created_at"]),
    )


class SQLiteCorrelationStore(CorrelationStore):
    """Durable correlation store on a SQLite database file.

    Attributes:
        path: Database file path, or ":memory:".
    """

    def __init__(self, path: str, clock: Clock = utc_now) -> None:
        """Open (and create if needed) the database and its schema.

        Args:
            path: Database file path. Parent directories are created.
            clock: Returns the current aware UTC time. Injected for tests.

        Raises:
            StorageError: If the database cannot be opened or initialized.
        """
        self.path = path
        self._clock = clock
        self._lock = threading.Lock()

        try:
            if path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None leaves transaction control to explicit BEGIN
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA busy_timeout = 5000")
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to open tracking database {path}: {e}", cause=e) from e

    async def _run(self, fn: Callable[[], T]) -> T:
        def locked() -> T:
            with self._lock:
                return fn()

        try:
            return await asyncio.to_thread(locked)
        except sqlite3.Error as e:
            raise StorageError(f"Tracking database operation failed: {e}", cause=e) from e

    async def create(self, record: TrackingRecord) -> TrackingRecord:
        """Insert a record inside one immediate transaction.

        An expired row for the same trx_id is deleted first so the id can be
        reused. If an active row exists the UNIQUE index rejects the insert.

        Raises:
            RecordConflictError: If an active record for the trx_id exists.
            StorageError: If the database fails.
        """
        now = self._clock()
        persisted = record.model_copy(update={"created_at": now})

        def insert() -> TrackingRecord | None:
            cur = self._conn.cursor()
            try:
                cur.execute("BEGIN IMMEDIATE")
                cur.execute(
                    "DELETE FROM tracking_records WHERE trx_id = ? AND expires_at <= ?",
                    (record.trx_id, _to_micros(now)),
                )
                cur.execute(
                    f"INSERT INTO tracking_records ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        persisted.trx_id,
                        persisted.message_handle,
                        persisted.destination_address,
                        persisted.destination_kind.value,
                        _to_micros(persisted.sent_at),
                        _to_micros(persisted.expires_at),
                        _to_micros(now),
                    ),
                )
                cur.execute("COMMIT")
                return None
            except sqlite3.IntegrityError:
                cur.execute("ROLLBACK")
                row = cur.execute(
                    f"SELECT {_COLUMNS} FROM tracking_records WHERE trx_id = ?",
                    (record.trx_id,),
                ).fetchone()
                if row is None:
                    raise
                return _row_to_record(row)
            except sqlite3.Error:
                if self._conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise
            finally:
                cur.close()

        existing = await self._run(insert)
        if existing is not None:
            raise RecordConflictError(
                message=f"Active record already exists for trx_id {record.trx_id}",
                existing=existing,
            )
        return persisted

    async def find_active_by_trx_id(self, trx_id: str) -> TrackingRecord | None:
        return await self._fetch_one(
            f"SELECT {_COLUMNS} FROM tracking_records WHERE trx_id = ? AND expires_at > ? LIMIT 1",
            (trx_id, _to_micros(self._clock())),
        )

    async def find_active_by_destination(self, address: str) -> TrackingRecord | None:
        return await self._fetch_one(
            f"""
            SELECT {_COLUMNS} FROM tracking_records
            WHERE destination_address = ? AND expires_at > ?
            ORDER BY sent_at DESC, id DESC
            LIMIT 1
            """,
            (address, _to_micros(self._clock())),
        )

    async def purge_expired(self) -> int:
        cutoff = _to_micros(self._clock())

        def delete() -> int:
            cur = self._conn.execute(
                "DELETE FROM tracking_records WHERE expires_at <= ?", (cutoff,)
            )
            return cur.rowcount

        return await self._run(delete)

    async def count(self) -> int:
        now = _to_micros(self._clock())

        def select() -> int:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM tracking_records WHERE expires_at > ?", (now,)
            ).fetchone()
            return int(row[0])

        return await self._run(select)

    async def close(self) -> None:
        await self._run(self._conn.close)

    async def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> TrackingRecord | None:
        def select() -> TrackingRecord | None:
            row = self._conn.execute(sql, params).fetchone()
            return _row_to_record(row) if row is not None else None

        return await self._run(select)
