"""Process lifecycle for the reply bridge.

Bridge wires the components together and owns the two long-lived tasks:
the expiry sweeper and the inbound event stream. Both share one
asyncio.Event as the shutdown signal; the delivery dispatcher waits on it
too, so pending retries are abandoned on shutdown.

Examples:
    Running the bridge::

        config = BridgeConfig.from_env()
        configure_logging(config.log_level, config.json_logs)

        async with Bridge.from_config(config, transport) as bridge:
            status, response = await bridge.forwarder.handle(params)
"""

import asyncio
import time
from typing import Any

import httpx

from reply_bridge.config import BridgeConfig
from reply_bridge.core.correlator import ReplyCorrelator
from reply_bridge.core.dedup import DedupGate
from reply_bridge.core.dispatcher import DeliveryDispatcher
from reply_bridge.core.forwarding import TransactionForwarder
from reply_bridge.core.sweeper import ExpirySweeper
from reply_bridge.core.whitelist import WhitelistFilter
from reply_bridge.models import Clock, utc_now
from reply_bridge.observability.logging import get_logger
from reply_bridge.observability.metrics import set_active_records
from reply_bridge.storage import build_store
from reply_bridge.storage.base import CorrelationStore
from reply_bridge.transport.base import Transport

logger = get_logger(__name__)


class Bridge:
    """Top-level owner of the bridge's components and background tasks.

    Attributes:
        config: Bridge configuration.
        transport: Chat transport.
        store: Correlation store shared by every component.
        gate: Dedup gate for outbound sends.
        forwarder: Outbound request handler.
        correlator: Inbound reply correlator.
        dispatcher: Webhook dispatcher.
    """

    def __init__(
        self,
        config: BridgeConfig,
        transport: Transport,
        store: CorrelationStore,
        client: httpx.AsyncClient | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.config = config
        self.transport = transport
        self.store = store
        self._stop_event = asyncio.Event()

        self.gate = DedupGate(store, ttl_seconds=config.tracking_ttl_seconds, clock=clock)
        self.forwarder = TransactionForwarder(transport, self.gate)
        self.dispatcher = DeliveryDispatcher(
            webhook_url=config.webhook_url,
            timeout_seconds=config.webhook_timeout_seconds,
            retry_count=config.webhook_retry_count,
            backoff_base_seconds=config.webhook_backoff_base_seconds,
            client=client,
            stop_event=self._stop_event,
        )
        self.correlator = ReplyCorrelator(
            store,
            WhitelistFilter(config.webhook_whitelist),
            self.dispatcher,
        )

        self.sweeper = ExpirySweeper(
            store,
            interval_seconds=config.sweep_interval_seconds,
            stop_event=self._stop_event,
        )
        self._events_task: asyncio.Task[None] | None = None
        self._started_at: float | None = None
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: BridgeConfig,
        transport: Transport,
        client: httpx.AsyncClient | None = None,
        clock: Clock = utc_now,
    ) -> "Bridge":
        """Build a bridge with the store selected by the configuration."""
        return cls(config, transport, build_store(config, clock=clock), client=client, clock=clock)

    @property
    def running(self) -> bool:
        return self._started_at is not None

    async def start(self) -> None:
        """Start the sweeper and the inbound event stream.

        A stopped bridge has released its store and HTTP client and cannot be
        started again; build a new one instead.

        Raises:
            RuntimeError: If the bridge has already been stopped.
        """
        if self.running:
            return
        if self._closed:
            raise RuntimeError("Bridge has been stopped and cannot be restarted")

        self.sweeper.start()
        self._events_task = asyncio.create_task(
            self._consume_events(), name="reply-bridge-events"
        )
        self._started_at = time.monotonic()
        logger.info(
            "bridge.started",
            storage_backend=self.config.storage_backend,
            whitelist_size=len(self.config.webhook_whitelist),
            transport_connected=self.transport.is_connected(),
        )

    async def stop(self) -> None:
        """Signal shutdown, stop both tasks, drain deliveries and release resources."""
        if not self.running:
            return

        logger.info("bridge.stopping")
        self._stop_event.set()

        if self._events_task is not None:
            self._events_task.cancel()
            try:
                await self._events_task
            except asyncio.CancelledError:
                pass
            self._events_task = None

        await self.sweeper.stop()

        await self.correlator.drain(timeout=self.config.shutdown_timeout_seconds)
        await self.dispatcher.aclose()
        await self.store.close()

        self._started_at = None
        self._closed = True
        logger.info("bridge.stopped")

    async def __aenter__(self) -> "Bridge":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _consume_events(self) -> None:
        logger.info("events.started")
        try:
            async for event in self.transport.events():
                if self._stop_event.is_set():
                    break
                await self.correlator.handle(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "events.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return
        logger.info("events.stopped")

    async def health(self) -> dict[str, Any]:
        """Return a health snapshot for monitoring endpoints."""
        active = await self.store.count()
        set_active_records(active)
        uptime = time.monotonic() - self._started_at if self._started_at is not None else 0.0

        return {
            "status": "healthy" if self.running else "stopped",
            "transport": {"connected": self.transport.is_connected()},
            "webhook": {
                "configured": bool(self.config.webhook_url),
                "url": self.config.webhook_url,
            },
            "tracking": {
                "active_records": active,
                "pending_deliveries": self.correlator.pending_deliveries,
                "storage_backend": self.config.storage_backend,
            },
            "uptime_seconds": round(uptime, 3),
            "timestamp": utc_now().isoformat(),
        }
