"""Contract tests run against every CorrelationStore backend.

This test suite covers:
    - create / find_active_by_trx_id round trip
    - Active-record uniqueness and reuse after expiry
    - Most-recent-by-destination lookup
    - Expiry visibility (expired records are invisible before purge)
    - purge_expired and count
    - Concurrent create for the same trx_id
"""

import asyncio

import pytest

from reply_bridge.exceptions import RecordConflictError
from reply_bridge.models import DestinationKind
from reply_bridge.storage.base import CorrelationStore

GROUP = "120363025246125486@g.us"
PERSONAL = "628111222333@s.whatsapp.net"


# ============================================================================
# Basic Operations
# ============================================================================


@pytest.mark.asyncio
async def test_store_satisfies_protocol(store):
    assert isinstance(store, CorrelationStore)


@pytest.mark.asyncio
async def test_find_nonexistent_trx_id(store):
    assert await store.find_active_by_trx_id("missing") is None


@pytest.mark.asyncio
async def test_create_then_find_by_trx_id(store, make_record, clock):
    record = make_record()

    persisted = await store.create(record)

    assert persisted.trx_id == "TRX1"
    assert persisted.created_at == clock()

    found = await store.find_active_by_trx_id("TRX1")
    assert found is not None
    assert found.message_handle == "M1"
    assert found.destination_address == PERSONAL
    assert found.destination_kind is DestinationKind.PERSONAL
    assert found.sent_at == record.sent_at
    assert found.expires_at == record.expires_at


@pytest.mark.asyncio
async def test_timestamps_survive_with_microsecond_precision(store, make_record, clock):
    clock.now = clock.now.replace(microsecond=123456)
    record = make_record()

    await store.create(record)
    found = await store.find_active_by_trx_id("TRX1")

    assert found is not None
    assert found.sent_at == record.sent_at
    assert found.sent_at.microsecond == 123456


@pytest.mark.asyncio
async def test_create_duplicate_active_trx_id_conflicts(store, make_record):
    await store.create(make_record(message_handle="M1"))

    with pytest.raises(RecordConflictError) as exc_info:
        await store.create(make_record(message_handle="M2"))

    assert exc_info.value.existing.message_handle == "M1"

    found = await store.find_active_by_trx_id("TRX1")
    assert found is not None
    assert found.message_handle == "M1"


@pytest.mark.asyncio
async def test_trx_ids_are_independent(store, make_record):
    await store.create(make_record(trx_id="TRX1", message_handle="M1"))
    await store.create(make_record(trx_id="TRX2", message_handle="M2"))

    assert (await store.find_active_by_trx_id("TRX1")).message_handle == "M1"
    assert (await store.find_active_by_trx_id("TRX2")).message_handle == "M2"
    assert await store.count() == 2


# ============================================================================
# Expiry
# ============================================================================


@pytest.mark.asyncio
async def test_record_invisible_once_expired(store, make_record, clock):
    await store.create(make_record(ttl_seconds=60))

    clock.advance(59)
    assert await store.find_active_by_trx_id("TRX1") is not None

    clock.advance(1)
    assert await store.find_active_by_trx_id("TRX1") is None
    assert await store.find_active_by_destination(PERSONAL) is None
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_trx_id_reusable_after_expiry(store, make_record, clock):
    await store.create(make_record(message_handle="M1", ttl_seconds=60))
    clock.advance(61)

    persisted = await store.create(make_record(message_handle="M2", ttl_seconds=60))

    assert persisted.message_handle == "M2"
    found = await store.find_active_by_trx_id("TRX1")
    assert found is not None
    assert found.message_handle == "M2"


@pytest.mark.asyncio
async def test_purge_removes_only_expired(store, make_record, clock):
    await store.create(make_record(trx_id="SHORT", ttl_seconds=60))
    await store.create(make_record(trx_id="LONG", ttl_seconds=3600))

    clock.advance(120)
    removed = await store.purge_expired()

    assert removed == 1
    assert await store.find_active_by_trx_id("LONG") is not None
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_purge_on_empty_store(store):
    assert await store.purge_expired() == 0


@pytest.mark.asyncio
async def test_purge_is_idempotent(store, make_record, clock):
    await store.create(make_record(ttl_seconds=60))
    clock.advance(60)

    assert await store.purge_expired() == 1
    assert await store.purge_expired() == 0


# ============================================================================
# Destination Lookup
# ============================================================================


@pytest.mark.asyncio
async def test_find_by_destination_returns_most_recent(store, make_record, clock):
    await store.create(
        make_record(
            trx_id="TRX1",
            message_handle="M1",
            destination_address=GROUP,
            destination_kind=DestinationKind.GROUP,
        )
    )
    clock.advance(5)
    await store.create(
        make_record(
            trx_id="TRX2",
            message_handle="M2",
            destination_address=GROUP,
            destination_kind=DestinationKind.GROUP,
        )
    )

    found = await store.find_active_by_destination(GROUP)

    assert found is not None
    assert found.trx_id == "TRX2"


@pytest.mark.asyncio
async def test_find_by_destination_breaks_ties_by_creation_order(store, make_record):
    await store.create(make_record(trx_id="TRX1", destination_address=GROUP))
    await store.create(make_record(trx_id="TRX2", destination_address=GROUP))

    found = await store.find_active_by_destination(GROUP)

    assert found is not None
    assert found.trx_id == "TRX2"


@pytest.mark.asyncio
async def test_find_by_destination_skips_expired_newer_record(store, make_record, clock):
    await store.create(make_record(trx_id="LONG", destination_address=GROUP, ttl_seconds=3600))
    clock.advance(1)
    await store.create(make_record(trx_id="SHORT", destination_address=GROUP, ttl_seconds=10))
    clock.advance(10)

    found = await store.find_active_by_destination(GROUP)

    assert found is not None
    assert found.trx_id == "LONG"


@pytest.mark.asyncio
async def test_find_by_destination_is_exact_match(store, make_record):
    await store.create(make_record(destination_address=PERSONAL))

    assert await store.find_active_by_destination("628111222333") is None
    assert await store.find_active_by_destination(GROUP) is None


# ============================================================================
# Concurrency
# ============================================================================


@pytest.mark.asyncio
async def test_concurrent_create_same_trx_id_single_winner(store, make_record):
    records = [make_record(message_handle=f"M{i}") for i in range(10)]

    results = await asyncio.gather(
        *(store.create(r) for r in records),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, RecordConflictError)]
    assert len(winners) == 1
    assert len(conflicts) == 9

    found = await store.find_active_by_trx_id("TRX1")
    assert found.message_handle == winners[0].message_handle
