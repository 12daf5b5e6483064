"""Chat transport contract for the reply bridge.

The bridge consumes the chat network only through the Transport protocol:
resolve and send outbound text, and iterate inbound message events.
Pairing, encryption and session storage belong to the concrete transport.
"""

from reply_bridge.transport.base import Transport

__all__ = ["Transport"]
