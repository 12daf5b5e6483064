"""
Pytest configuration and shared fixtures for reply_bridge tests.
"""

import asyncio
import itertools
import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from reply_bridge.exceptions import (
    InvalidDestinationError,
    TransportNotConnectedError,
    TransportSendError,
)
from reply_bridge.models import DestinationKind, InboundMessage, TrackingRecord
from reply_bridge.transport.addressing import (
    classify_destination,
    normalize_phone_number,
    personal_address,
)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeTransport:
    """In-process transport recording sends and replaying queued events."""

    def __init__(self, known_groups: set[str] | None = None) -> None:
        self.connected = True
        self.known_groups = known_groups or set()
        self.sent: list[tuple[str, str]] = []
        self.fail_next_send: Exception | None = None
        self.send_delay = 0.0
        self._handles = itertools.count(1)
        self._events: asyncio.Queue[InboundMessage | None] = asyncio.Queue()

    def is_connected(self) -> bool:
        return self.connected

    async def resolve_destination(self, destination: str) -> tuple[str, DestinationKind]:
        if classify_destination(destination) is DestinationKind.GROUP:
            if destination not in self.known_groups:
                raise InvalidDestinationError(
                    "group not found or bot not a member", destination=destination
                )
            return destination, DestinationKind.GROUP

        phone = normalize_phone_number(destination)
        if phone is None:
            raise InvalidDestinationError("invalid phone number format", destination=destination)
        return personal_address(phone), DestinationKind.PERSONAL

    async def send_text(self, address: str, text: str) -> str:
        if not self.connected:
            raise TransportNotConnectedError("transport not connected")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_next_send is not None:
            error, self.fail_next_send = self.fail_next_send, None
            raise TransportSendError(f"failed to send message: {error}", cause=error)
        self.sent.append((address, text))
        return f"M{next(self._handles)}"

    def push(self, event: InboundMessage) -> None:
        self._events.put_nowait(event)

    def close_stream(self) -> None:
        self._events.put_nowait(None)

    async def events(self) -> AsyncIterator[InboundMessage]:
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def transport() -> FakeTransport:
    """Provide a connected fake transport that knows one group."""
    return FakeTransport(known_groups={"120363025246125486@g.us"})


@pytest.fixture
def webhook_url() -> str:
    return "https://trx.example.com/webhook"


@pytest.fixture(params=["memory", "sqlite"])
async def store(request, clock, tmp_path):
    """Provide each correlation store backend, bound to the fake clock."""
    from reply_bridge.storage.memory import MemoryCorrelationStore
    from reply_bridge.storage.sqlite import SQLiteCorrelationStore

    if request.param == "sqlite":
        backend = SQLiteCorrelationStore(str(tmp_path / "tracking.db"), clock=clock)
    else:
        backend = MemoryCorrelationStore(clock=clock)
    yield backend
    await backend.close()


@pytest.fixture
def make_record(clock):
    """Factory for tracking records sent at the fake clock's current time."""

    def _make(
        trx_id: str = "TRX1",
        message_handle: str = "M1",
        destination_address: str = "628111222333@s.whatsapp.net",
        destination_kind: DestinationKind = DestinationKind.PERSONAL,
        ttl_seconds: int = 86400,
    ) -> TrackingRecord:
        now = clock()
        return TrackingRecord(
            trx_id=trx_id,
            message_handle=message_handle,
            destination_address=destination_address,
            destination_kind=destination_kind,
            sent_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )

    return _make


class ScriptedWebhook:
    """httpx handler answering with scripted statuses or errors, then 200s."""

    def __init__(self) -> None:
        self.outcomes: list[int | Exception] = []
        self.requests: list[httpx.Request] = []

    def script(self, *outcomes: int | Exception) -> "ScriptedWebhook":
        self.outcomes.extend(outcomes)
        return self

    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": outcome < 300})


@pytest.fixture
def webhook() -> ScriptedWebhook:
    return ScriptedWebhook()


@pytest.fixture
async def http_client(webhook):
    """AsyncClient routed to the scripted webhook instead of the network."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(webhook))
    yield client
    await client.aclose()


@pytest.fixture
async def make_bridge(transport, http_client, clock, webhook_url):
    """Factory for started bridges wired to the fake transport and webhook.

    Every bridge built here is stopped at teardown.
    """
    from reply_bridge.config import BridgeConfig
    from reply_bridge.core.lifecycle import Bridge
    from reply_bridge.storage import build_store

    bridges = []

    async def _make(**overrides):
        overrides.setdefault("webhook_backoff_base_seconds", 0.001)
        config = BridgeConfig(webhook_url=webhook_url, **overrides)
        bridge = Bridge(
            config,
            transport,
            build_store(config, clock=clock),
            client=http_client,
            clock=clock,
        )
        await bridge.start()
        bridges.append(bridge)
        return bridge

    yield _make

    for bridge in bridges:
        await bridge.stop()


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def eventually():
    return wait_until
