"""Correlation store backends for the reply bridge.

All backends implement the CorrelationStore protocol defined in base.py.

Available Backends:
    - MemoryCorrelationStore: In-memory storage with asyncio concurrency
    - SQLiteCorrelationStore: Durable storage on a SQLite file
"""

from reply_bridge.config import BridgeConfig
from reply_bridge.models import Clock, utc_now
from reply_bridge.storage.base import CorrelationStore
from reply_bridge.storage.memory import MemoryCorrelationStore
from reply_bridge.storage.sqlite import SQLiteCorrelationStore


def build_store(config: BridgeConfig, clock: Clock = utc_now) -> CorrelationStore:
    """Create the store selected by ``config.storage_backend``."""
    if config.storage_backend == "sqlite":
        return SQLiteCorrelationStore(config.tracking_db_path, clock=clock)
    return MemoryCorrelationStore(clock=clock)


__all__ = [
    "CorrelationStore",
    "MemoryCorrelationStore",
    "SQLiteCorrelationStore",
    "build_store",
]
