"""In-memory correlation store with asyncio concurrency control.

This module provides an in-memory implementation of the CorrelationStore
protocol. Records are held in a dictionary keyed by trx_id with a secondary
index from destination address to the trx_ids sent there.

The MemoryCorrelationStore is suitable for:
    - Single-process deployments where losing correlations on restart is acceptable
    - Development and testing

Use SQLiteCorrelationStore when tracking must survive restarts.

Concurrency:
    - A single asyncio.Lock guards every mutation
    - create() performs its uniqueness check and insert under that lock
    - Reads never await, so they observe a consistent snapshot

Examples:
    Basic usage::

        store = MemoryCorrelationStore()
        await store.create(record)
        assert (await store.find_active_by_trx_id(record.trx_id)) is not None
"""

import asyncio
import itertools

from reply_bridge.exceptions import RecordConflictError
from reply_bridge.models import Clock, TrackingRecord, utc_now
from reply_bridge.storage.base import CorrelationStore


class MemoryCorrelationStore(CorrelationStore):
    """In-memory correlation store.

    Attributes:
        _records: Dictionary mapping trx_id to its latest record.
        _by_destination: Dictionary mapping address to trx_ids sent there.
        _order: Creation sequence numbers used to break sent_at ties.
        _lock: Lock serializing writes.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        """Initialize an empty store.

        Args:
            clock: Returns the current aware UTC time. Injected for tests.
        """
        self._clock = clock
        self._records: dict[str, TrackingRecord] = {}
        self._by_destination: dict[str, set[str]] = {}
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def create(self, record: TrackingRecord) -> TrackingRecord:
        """Persist a new record unless an active one exists for its trx_id.

        An expired record with the same trx_id is replaced.

        Raises:
            RecordConflictError: If an active record for the trx_id exists.
        """
        async with self._lock:
            now = self._clock()
            existing = self._records.get(record.trx_id)
            if existing is not None:
                if existing.is_active(now):
                    raise RecordConflictError(
                        message=f"Active record already exists for trx_id {record.trx_id}",
                        existing=existing,
                    )
                self._unindex(existing)

            persisted = record.model_copy(update={"created_at": now})
            self._records[record.trx_id] = persisted
            self._by_destination.setdefault(persisted.destination_address, set()).add(
                persisted.trx_id
            )
            self._order[persisted.trx_id] = next(self._sequence)
            return persisted

    async def find_active_by_trx_id(self, trx_id: str) -> TrackingRecord | None:
        record = self._records.get(trx_id)
        if record is None or not record.is_active(self._clock()):
            return None
        return record

    async def find_active_by_destination(self, address: str) -> TrackingRecord | None:
        now = self._clock()
        candidates = [
            self._records[trx_id]
            for trx_id in self._by_destination.get(address, ())
            if trx_id in self._records
        ]
        active = [r for r in candidates if r.is_active(now)]
        if not active:
            return None
        return max(active, key=lambda r: (r.sent_at, self._order.get(r.trx_id, -1)))

    async def purge_expired(self) -> int:
        """Remove every record whose expires_at <= now.

        The expiry predicate is re-evaluated under the lock, so a record
        replaced by a fresh create() between the scan and the delete is kept.
        """
        async with self._lock:
            now = self._clock()
            expired = [r for r in self._records.values() if not r.is_active(now)]
            for record in expired:
                del self._records[record.trx_id]
                self._unindex(record)
            return len(expired)

    async def count(self) -> int:
        now = self._clock()
        return sum(1 for r in self._records.values() if r.is_active(now))

    async def close(self) -> None:
        """Nothing to release for the in-memory store."""

    def _unindex(self, record: TrackingRecord) -> None:
        trx_ids = self._by_destination.get(record.destination_address)
        if trx_ids is not None:
            trx_ids.discard(record.trx_id)
            if not trx_ids:
                del self._by_destination[record.destination_address]
        self._order.pop(record.trx_id, None)
