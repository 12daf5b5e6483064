"""Core tracking and delivery logic for the reply bridge.

This package contains:
- Dedup gate: at most one active send per transaction ID
- Reply correlator: inbound message -> tracked transaction
- Delivery dispatcher: webhook delivery with exponential backoff
- Expiry sweeper: periodic purge of expired records
- Whitelist filter: which chats may reach the webhook
- Forwarder and lifecycle: outbound request handling and process wiring
"""

from reply_bridge.core.correlator import ReplyCorrelator
from reply_bridge.core.dedup import DedupGate
from reply_bridge.core.dispatcher import DeliveryDispatcher
from reply_bridge.core.forwarding import TransactionForwarder
from reply_bridge.core.lifecycle import Bridge
from reply_bridge.core.sweeper import ExpirySweeper
from reply_bridge.core.whitelist import WhitelistFilter

__all__ = [
    "Bridge",
    "DedupGate",
    "DeliveryDispatcher",
    "ExpirySweeper",
    "ReplyCorrelator",
    "TransactionForwarder",
    "WhitelistFilter",
]
