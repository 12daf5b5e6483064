"""Dedup gate enforcing at most one active send per transaction ID.

The gate wraps every outbound send in a check-send-record sequence:

    1. Look up an active record for the trx_id. If found, raise
       DuplicateTransactionError with the existing handle and send time.
    2. Call the send function. A failed send propagates unchanged and
       leaves no record behind.
    3. Persist a TrackingRecord with expires_at = now + TTL.

Step 3 runs after an irreversible side effect, so its failures are logged
and the admit still reports success with ``tracked=False``. Losing a record
only costs reply correlation for that transaction.

Within one process, admits for the same trx_id are serialized with a
per-key asyncio.Lock held across all three steps, so only one of several
concurrent callers ever sends. The store's atomic create() covers the
cross-process case.

Examples:
    >>> gate = DedupGate(store, ttl_seconds=86400)
    >>> async def send(destination: str) -> SendReceipt:
    ...     address, kind = await transport.resolve_destination(destination)
    ...     handle = await transport.send_text(address, text)
    ...     return SendReceipt(message_handle=handle, destination_address=address,
    ...                        destination_kind=kind)
    >>> result = await gate.admit("TRX1", "628111222333", send)
    >>> result.record.message_handle
    '3EB0C431C26A1916C5E3'
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

from reply_bridge.exceptions import DuplicateTransactionError, RecordConflictError
from reply_bridge.models import AdmitResult, Clock, SendReceipt, TrackingRecord, utc_now
from reply_bridge.observability.logging import get_logger
from reply_bridge.observability.metrics import record_admission
from reply_bridge.storage.base import CorrelationStore

logger = get_logger(__name__)

SendFn = Callable[[str], Awaitable[SendReceipt]]


class DedupGate:
    """Admits transactions through the correlation store.

    Attributes:
        store: Correlation store holding tracking records.
        ttl: Lifetime of each tracking record.
    """

    def __init__(
        self,
        store: CorrelationStore,
        ttl_seconds: int,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def _key_lock(self, trx_id: str) -> AsyncIterator[None]:
        # Reference-counted so the lock is dropped only when nobody holds or awaits it
        lock = self._locks.setdefault(trx_id, asyncio.Lock())
        self._waiters[trx_id] = self._waiters.get(trx_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[trx_id] -= 1
            if self._waiters[trx_id] == 0:
                del self._waiters[trx_id]
                del self._locks[trx_id]

    async def admit(self, trx_id: str, destination: str, send_fn: SendFn) -> AdmitResult:
        """Send a transaction once and record it for reply correlation.

        Args:
            trx_id: Transaction ID; the only dedup key.
            destination: Raw destination, passed through to send_fn.
            send_fn: Resolves the destination, sends the message and returns
                a SendReceipt.

        Returns:
            AdmitResult with the tracking record; ``tracked`` is False if
            the record could not be persisted after the send.

        Raises:
            DuplicateTransactionError: If an active record exists for trx_id.
            Exception: Whatever send_fn raises, unchanged.
        """
        log = logger.bind(trx_id=trx_id)

        async with self._key_lock(trx_id):
            existing = await self.store.find_active_by_trx_id(trx_id)
            if existing is not None:
                record_admission("duplicate")
                log.warning(
                    "dedup.duplicate",
                    existing_message_handle=existing.message_handle,
                    existing_destination=existing.destination_address,
                    sent_at=existing.sent_at.isoformat(),
                )
                raise DuplicateTransactionError(
                    message=(
                        f"Transaction {trx_id} was already sent at "
                        f"{existing.sent_at.isoformat()} and is still being tracked"
                    ),
                    trx_id=trx_id,
                    message_handle=existing.message_handle,
                    sent_at=existing.sent_at,
                    destination=existing.destination_address,
                )

            try:
                receipt = await send_fn(destination)
            except Exception as e:
                record_admission("send_failed")
                log.warning(
                    "dedup.send_failed",
                    destination=destination,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            now = self._clock()
            record = TrackingRecord(
                trx_id=trx_id,
                message_handle=receipt.message_handle,
                destination_address=receipt.destination_address,
                destination_kind=receipt.destination_kind,
                sent_at=now,
                expires_at=now + self.ttl,
            )

            try:
                record = await self.store.create(record)
            except RecordConflictError as e:
                # Another process tracked the same trx_id between our check and create
                record_admission("untracked")
                log.warning(
                    "dedup.tracking_lost",
                    reason="conflict",
                    message_handle=record.message_handle,
                    existing_message_handle=e.existing.message_handle,
                )
                return AdmitResult(record=record, tracked=False)
            except Exception as e:
                record_admission("untracked")
                log.warning(
                    "dedup.tracking_lost",
                    reason="store_error",
                    message_handle=record.message_handle,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return AdmitResult(record=record, tracked=False)

        record_admission("admitted")
        log.info(
            "dedup.admitted",
            destination=record.destination_address,
            destination_kind=record.destination_kind.value,
            message_handle=record.message_handle,
            expires_at=record.expires_at.isoformat(),
        )
        return AdmitResult(record=record, tracked=True)
