"""Expiry sweeper for tracking records.

Reads already ignore records whose ``expires_at`` has passed, so sweeping
never changes what the bridge sees. It reclaims space and keeps the
``bridge_active_records`` gauge honest. One pass purges expired records and
then counts what is left; both numbers go into a single ``sweeper.completed``
event:

    {"event": "sweeper.completed", "records_removed": 3, "active_records": 41}

Passes run once at start and then every ``interval_seconds`` until the stop
event is set. A failing pass is logged and the next one runs on schedule.

Examples:
    >>> sweeper = ExpirySweeper(store, interval_seconds=3600, stop_event=stop_event)
    >>> sweeper.start()
    >>> await sweeper.stop()
"""

import asyncio
from typing import NamedTuple

from reply_bridge.observability.logging import get_logger
from reply_bridge.observability.metrics import record_sweep, set_active_records
from reply_bridge.storage.base import CorrelationStore

logger = get_logger(__name__)


class SweepResult(NamedTuple):
    records_removed: int
    active_records: int


class ExpirySweeper:
    """Periodic purge of expired tracking records.

    Attributes:
        store: Correlation store to purge.
        interval_seconds: Time between passes.
    """

    def __init__(
        self,
        store: CorrelationStore,
        interval_seconds: float = 3600,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop_event = stop_event or asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> SweepResult:
        """Purge expired records and report what was removed and what remains.

        Raises:
            StorageError: If the store fails.
        """
        removed = await self.store.purge_expired()
        active = await self.store.count()
        record_sweep(removed)
        set_active_records(active)
        return SweepResult(records_removed=removed, active_records=active)

    async def run(self) -> None:
        """Sweep until the stop event is set."""
        logger.info("sweeper.started", interval_seconds=self.interval_seconds)

        while not self._stop_event.is_set():
            try:
                result = await self.sweep_once()
            except Exception as e:
                logger.error("sweeper.failed", error=str(e), error_type=type(e).__name__)
            else:
                log = logger.info if result.records_removed else logger.debug
                log("sweeper.completed", **result._asdict())

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("sweeper.stopped")

    def start(self) -> asyncio.Task[None]:
        """Run the sweeper as a background task. A running sweeper is left alone."""
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="reply-bridge-sweeper")
        return self._task  # type: ignore[return-value]

    async def stop(self, timeout: float = 5.0) -> None:
        """Set the stop event and wait for the task, cancelling it after ``timeout``."""
        task, self._task = self._task, None
        self._stop_event.set()
        if task is None:
            return

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("sweeper.stop_timeout", timeout_seconds=timeout)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("sweeper.cancelled")
