"""Correlation store protocol for the reply bridge.

This module defines the interface every tracking-record backend must
implement. The store is the only shared mutable state in the bridge: the
dedup gate writes to it, the reply correlator reads from it on every
inbound event, and the sweeper purges it periodically.

Examples:
    Using a store::

        from reply_bridge.storage.memory import MemoryCorrelationStore

        store = MemoryCorrelationStore()
        persisted = await store.create(record)

        active = await store.find_active_by_destination("628111222333@s.whatsapp.net")
        if active is not None:
            print(active.trx_id)

Atomicity and Expiry Requirements:
    All CorrelationStore implementations MUST guarantee:

    1. **Atomic uniqueness**: create() checks for an active record with the
       same trx_id and inserts in one atomic step (a lock held across both,
       or a unique constraint enforced by the storage engine). Concurrent
       creates for one trx_id: exactly one succeeds.

    2. **No overwrite**: create() never replaces an active record. It
       raises RecordConflictError carrying the existing record instead.

    3. **Expiry on read**: every read filters on expires_at > now at query
       time. A record must never be returned past its horizon, whether or
       not purge_expired() has run.

    4. **Expired ids are reusable**: an expired record never blocks
       create() for the same trx_id.

    5. **Safe purging**: purge_expired() only deletes records whose
       expires_at <= now, so it can run concurrently with reads and writes.
"""

from typing import Protocol, runtime_checkable

from reply_bridge.models import TrackingRecord


@runtime_checkable
class CorrelationStore(Protocol):
    """Protocol defining the interface for tracking-record backends.

    Error Handling:
        Methods raise StorageError for backend failures and
        RecordConflictError for uniqueness violations. Backend-specific
        exceptions must not escape.
    """

    async def create(self, record: TrackingRecord) -> TrackingRecord:
        """Persist a new tracking record.

        Args:
            record: The record to persist. Its created_at is ignored.

        Returns:
            The persisted record with created_at assigned by the store.

        Raises:
            RecordConflictError: If an active record with the same trx_id exists.
            StorageError: If the backend fails.
        """
        ...

    async def find_active_by_trx_id(self, trx_id: str) -> TrackingRecord | None:
        """Return the active record for a transaction ID, if any."""
        ...

    async def find_active_by_destination(self, address: str) -> TrackingRecord | None:
        """Return the most recently sent active record for an address.

        When several active records share the address, the one with the
        latest sent_at wins; ties go to the one created last.
        """
        ...

    async def purge_expired(self) -> int:
        """Delete every record whose expires_at <= now.

        Returns:
            The number of records removed.
        """
        ...

    async def count(self) -> int:
        """Return the number of currently active records."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
