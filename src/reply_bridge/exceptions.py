"""Custom exceptions for the reply bridge.

This module defines the exception hierarchy used to signal duplicate
transactions, transport failures, storage failures and exhausted webhook
deliveries.

Errors raised before any external side effect (duplicate check, destination
validation, sending) are surfaced to the caller. Errors raised after a
message was already sent are caught by the component that raised them and
logged.

Examples:
    Handling a duplicate transaction::

        from reply_bridge.exceptions import DuplicateTransactionError

        try:
            result = await gate.admit(trx_id, destination, send_fn)
        except DuplicateTransactionError as e:
            logger.warning("forward.duplicate", existing_message_id=e.message_handle)
            return 409, build_error(e)

    Handling an exhausted delivery::

        from reply_bridge.exceptions import DeliveryFailedError

        try:
            await dispatcher.deliver(payload, trx_id)
        except DeliveryFailedError as e:
            logger.error("delivery.failed", attempts=e.attempts, error=str(e.last_error))
"""

from datetime import datetime
from typing import Any


class BridgeError(Exception):
    """Base exception for all reply bridge errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class DuplicateTransactionError(BridgeError):
    """A transaction with this ID is already active.

    Raised by the dedup gate when an unexpired tracking record exists for
    the requested transaction ID. The existing record's handle and send
    time are carried so callers can report "already sent at T".

    Attributes:
        message: Human-readable error description.
        trx_id: The duplicated transaction ID.
        message_handle: Handle of the message sent for the first transaction.
        sent_at: When the first message was sent.
        destination: Address the first message was sent to.
    """

    def __init__(
        self,
        message: str,
        trx_id: str,
        message_handle: str,
        sent_at: datetime,
        destination: str,
    ) -> None:
        super().__init__(message)
        self.trx_id = trx_id
        self.message_handle = message_handle
        self.sent_at = sent_at
        self.destination = destination


class InvalidDestinationError(BridgeError):
    """The destination failed transport-level validation.

    Attributes:
        message: Human-readable error description.
        destination: The raw destination as supplied by the caller.
    """

    def __init__(self, message: str, destination: str) -> None:
        super().__init__(message)
        self.destination = destination


class TransportSendError(BridgeError):
    """The transport failed to send an outbound message.

    No tracking record is written when this is raised.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class TransportNotConnectedError(TransportSendError):
    """The transport has no live connection to the chat network."""


class StorageError(BridgeError):
    """Correlation store operation failed.

    Backend-specific exceptions (sqlite3 errors, I/O errors) are wrapped in
    this type so callers never see backend details.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class RecordConflictError(StorageError):
    """An active record already exists for the transaction ID.

    Attributes:
        message: Human-readable error description.
        existing: The active record that blocked the write.
    """

    def __init__(self, message: str, existing: Any) -> None:
        super().__init__(message)
        self.existing = existing


class DeliveryFailedError(BridgeError):
    """All webhook delivery attempts were exhausted.

    Attributes:
        message: Human-readable error description.
        trx_id: Transaction the reply was correlated with.
        attempts: Number of attempts made.
        last_error: The error from the final attempt.
    """

    def __init__(
        self,
        message: str,
        trx_id: str,
        attempts: int,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.trx_id = trx_id
        self.attempts = attempts
        self.last_error = last_error
