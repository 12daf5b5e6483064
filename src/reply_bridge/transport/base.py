"""Transport protocol consumed by the reply bridge.

A transport wraps a concrete chat-network client. The bridge needs four
capabilities from it and nothing else.

Examples:
    Sending through a transport::

        address, kind = await transport.resolve_destination("0811-1222-333")
        handle = await transport.send_text(address, "hello")

    Consuming inbound events::

        async for event in transport.events():
            await correlator.handle(event)
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from reply_bridge.models import DestinationKind, InboundMessage


@runtime_checkable
class Transport(Protocol):
    """Protocol for chat-network transports.

    Error Handling:
        resolve_destination() raises InvalidDestinationError for addresses
        the network rejects. send_text() raises TransportNotConnectedError
        when offline and TransportSendError for any other send failure.
    """

    def is_connected(self) -> bool:
        """Return True if the transport has a live connection."""
        ...

    async def resolve_destination(self, destination: str) -> tuple[str, DestinationKind]:
        """Validate a raw destination and return its normalized address and kind.

        Raises:
            InvalidDestinationError: If the destination is malformed, not
                registered on the network, or a group the account is not in.
        """
        ...

    async def send_text(self, address: str, text: str) -> str:
        """Send a text message and return the network's message handle.

        Raises:
            TransportNotConnectedError: If the transport is offline.
            TransportSendError: If the send fails.
        """
        ...

    def events(self) -> AsyncIterator[InboundMessage]:
        """Return an async iterator over inbound message events.

        The iterator runs until the transport disconnects or the consuming
        task is cancelled.
        """
        ...
