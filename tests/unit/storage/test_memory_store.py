"""Unit tests specific to MemoryCorrelationStore."""

import pytest

from reply_bridge.config import BridgeConfig
from reply_bridge.storage import build_store
from reply_bridge.storage.memory import MemoryCorrelationStore
from reply_bridge.storage.sqlite import SQLiteCorrelationStore


@pytest.fixture
def memory_store(clock):
    return MemoryCorrelationStore(clock=clock)


@pytest.mark.asyncio
async def test_purge_drops_destination_index(memory_store, make_record, clock):
    await memory_store.create(make_record(ttl_seconds=60))
    clock.advance(60)

    await memory_store.purge_expired()

    assert memory_store._records == {}
    assert memory_store._by_destination == {}
    assert memory_store._order == {}


@pytest.mark.asyncio
async def test_replacing_expired_record_moves_destination(memory_store, make_record, clock):
    await memory_store.create(make_record(destination_address="a@g.us", ttl_seconds=60))
    clock.advance(61)

    await memory_store.create(make_record(destination_address="b@g.us"))

    assert await memory_store.find_active_by_destination("a@g.us") is None
    assert (await memory_store.find_active_by_destination("b@g.us")).trx_id == "TRX1"
    assert "a@g.us" not in memory_store._by_destination


@pytest.mark.asyncio
async def test_close_is_a_noop(memory_store, make_record):
    await memory_store.create(make_record())
    await memory_store.close()

    assert await memory_store.count() == 1


@pytest.mark.asyncio
async def test_build_store_selects_backend(tmp_path):
    memory = build_store(BridgeConfig(webhook_url="https://example.com/hook"))
    sqlite = build_store(
        BridgeConfig(
            webhook_url="https://example.com/hook",
            storage_backend="sqlite",
            tracking_db_path=str(tmp_path / "tracking.db"),
        )
    )

    try:
        assert isinstance(memory, MemoryCorrelationStore)
        assert isinstance(sqlite, SQLiteCorrelationStore)
    finally:
        await sqlite.close()
