"""Core type definitions and models for the reply bridge.

This module provides the data structures shared by every component:
tracking records held by the correlation store, send receipts returned by
the transport, inbound chat events, the webhook payload delivered to the
transaction system and the request/response envelope of the forward
operation.

All timestamps are timezone-aware UTC datetimes. Naive datetimes are
interpreted as UTC on validation.

Examples:
    Creating a tracking record::

        from datetime import UTC, datetime, timedelta
        from reply_bridge.models import DestinationKind, TrackingRecord

        now = datetime.now(UTC)
        record = TrackingRecord(
            trx_id="TRX1",
            message_handle="3EB0C431C26A1916C5E3",
            destination_address="628111222333@s.whatsapp.net",
            destination_kind=DestinationKind.PERSONAL,
            sent_at=now,
            expires_at=now + timedelta(hours=24),
        )

    Checking expiry::

        record.is_active(datetime.now(UTC))
"""

from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _ensure_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=UTC)
    return v.astimezone(UTC)


class DestinationKind(str, Enum):
    """Kind of chat a message was sent to.

    Attributes:
        PERSONAL: One-to-one chat addressed by phone number.
        GROUP: Group chat addressed by group ID.
    """

    PERSONAL = "personal"
    GROUP = "group"


class TrackingRecord(BaseModel):
    """One outbound transaction awaiting a possible reply.

    Records are immutable once written. A record whose ``expires_at`` is at
    or before the current time is logically deleted even if the store still
    holds it physically.

    Attributes:
        trx_id: Transaction ID supplied by the transaction source.
        message_handle: Opaque handle returned by the transport on send.
        destination_address: Normalized address the message was sent to.
        destination_kind: Whether the address is a personal or group chat.
        sent_at: When the message was sent.
        expires_at: When the record stops being active (sent_at + TTL).
        created_at: Assigned by the store when the record is persisted.
    """

    trx_id: str = Field(
        ...,
        description="Transaction ID supplied by the transaction source",
        min_length=1,
        examples=["TRX1", "INV-20240101-0001"],
    )
    message_handle: str = Field(
        ...,
        description="Opaque message handle returned by the transport",
        min_length=1,
        examples=["3EB0C431C26A1916C5E3"],
    )
    destination_address: str = Field(
        ...,
        description="Normalized destination address",
        min_length=1,
        examples=["628111222333@s.whatsapp.net", "120363025246125486@g.us"],
    )
    destination_kind: DestinationKind = Field(
        ...,
        description="Personal or group destination",
    )
    sent_at: datetime = Field(..., description="When the message was sent")
    expires_at: datetime = Field(..., description="When the record stops being active")
    created_at: datetime | None = Field(
        default=None,
        description="Store-assigned persistence timestamp",
    )

    model_config = {"frozen": True}

    @field_validator("sent_at", "expires_at", "created_at")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        """Normalize timestamps to aware UTC datetimes."""
        if v is None:
            return v
        return _ensure_utc(v)

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_sent(cls, v: datetime, info: Any) -> datetime:
        """Validate that expires_at is after sent_at.

        Raises:
            ValueError: If expires_at is not after sent_at.
        """
        if "sent_at" in info.data and v <= info.data["sent_at"]:
            raise ValueError("expires_at must be after sent_at")
        return v

    def is_active(self, now: datetime) -> bool:
        """Return True if the record has not expired at ``now``."""
        return self.expires_at > _ensure_utc(now)


class SendReceipt(BaseModel):
    """Result of a successful outbound send.

    Attributes:
        message_handle: Handle assigned by the transport.
        destination_address: Normalized address the message went to.
        destination_kind: Personal or group destination.
    """

    message_handle: str = Field(..., min_length=1)
    destination_address: str = Field(..., min_length=1)
    destination_kind: DestinationKind


class AdmitResult(BaseModel):
    """Outcome of admitting a transaction through the dedup gate.

    Attributes:
        record: The tracking record built for the sent message.
        tracked: False if the message was sent but the record could not be
            persisted. Replies to that message will not be correlated.
    """

    record: TrackingRecord
    tracked: bool = True


class QuotedMessage(BaseModel):
    """The message an inbound reply quotes.

    Attributes:
        message_id: Handle of the quoted message, when the network provides it.
        content: Text of the quoted message, when available.
    """

    message_id: str | None = None
    content: str | None = None


class InboundMessage(BaseModel):
    """An inbound chat message event emitted by the transport.

    Attributes:
        message_id: Handle of the inbound message.
        from_address: Address of the individual sender.
        sender_name: Display name of the sender.
        chat_address: Address of the chat the message arrived in. Equal to
            from_address for personal chats, the group address otherwise.
        body_text: Text content of the message.
        message_type: Content type, "text" for plain messages.
        timestamp: When the message was sent.
        is_from_me: True if the bridge's own account sent it.
        quoted: Quoted-message metadata if the message is an explicit reply.
    """

    message_id: str = ""
    from_address: str
    sender_name: str = ""
    chat_address: str
    body_text: str = ""
    message_type: str = "text"
    timestamp: datetime = Field(default_factory=utc_now)
    is_from_me: bool = False
    quoted: QuotedMessage | None = None

    @field_validator("timestamp")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        """Normalize the timestamp to an aware UTC datetime."""
        return _ensure_utc(v)


class Sender(BaseModel):
    """Sender information in a webhook payload."""

    phone: str
    name: str


class MessageContent(BaseModel):
    """Message body in a webhook payload."""

    type: str = "text"
    content: str
    timestamp: datetime


class MessageContext(BaseModel):
    """Correlation context in a webhook payload.

    Attributes:
        chat_type: "personal" or "group", from the tracked record.
        is_reply: True if the inbound message quoted another message.
        original_message_id: Handle of the quoted message when known,
            otherwise the tracked outbound message handle.
        quoted_message_content: Text of the quoted message, if any.
    """

    chat_type: str
    is_reply: bool = False
    original_message_id: str
    quoted_message_content: str | None = None


class WebhookPayload(BaseModel):
    """Payload delivered to the transaction system's webhook endpoint.

    Examples:
        >>> payload.to_wire()["event"]
        'message_received'
    """

    event: str = "message_received"
    sender: Sender
    message: MessageContent
    context: MessageContext

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire shape.

        ``quoted_message_content`` is omitted when absent.
        """
        return self.model_dump(mode="json", exclude_none=True)


class ForwardRequest(BaseModel):
    """Inbound request to forward a transaction to a chat destination.

    Field presence and length are validated by the forwarder before the
    request is constructed.
    """

    destination: str
    trx_id: str
    descriptions: str
    instructions: str


class ForwardData(BaseModel):
    """Data returned when a transaction was forwarded."""

    trxid: str
    destination: str
    destination_type: str
    message_id: str
    timestamp: datetime


class ForwardError(BaseModel):
    """Error detail returned when a transaction was not forwarded."""

    error_code: str
    message: str
    existing_message_id: str | None = None
    sent_at: datetime | None = None


class ForwardResponse(BaseModel):
    """Response envelope of the forward operation."""

    status: str
    message: str
    data: ForwardData | None = None
    error: ForwardError | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible wire shape."""
        return self.model_dump(mode="json", exclude_none=True)
