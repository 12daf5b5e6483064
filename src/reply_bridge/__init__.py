"""
Transaction reply bridge for chat-messaging networks.

This package forwards transaction notifications to a chat destination,
tracks each one for at most one active send per transaction ID, and relays
replies back to the originating system through a webhook.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
