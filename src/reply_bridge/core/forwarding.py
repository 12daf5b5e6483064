"""Transaction forwarding: the outbound half of the bridge.

TransactionForwarder turns a forward request into a chat message sent
through the dedup gate. ``handle()`` implements the calling contract used by
whatever HTTP layer fronts the bridge: it validates the raw parameters,
forwards the transaction and maps every outcome to a status code and a
ForwardResponse envelope.

Status mapping:

    ============================  ======  ===============================
    Outcome                       Status  error_code
    ============================  ======  ===============================
    forwarded                     200     -
    missing field                 400     ERR_MISSING_PARAMETER
    field over 4096 characters    400     ERR_INVALID_PARAMETER
    invalid destination           400     ERR_INVALID_DESTINATION
    active duplicate trx_id       409     ERR_DUPLICATE_TRANSACTION
    transport not connected       503     ERR_TRANSPORT_NOT_CONNECTED
    send failed                   502     ERR_MESSAGE_SEND_FAILED
    correlation store failing     503     ERR_STORAGE_UNAVAILABLE
    anything else                 500     ERR_INTERNAL_SERVER
    ============================  ======  ===============================
"""

from collections.abc import Mapping

from reply_bridge.core.dedup import DedupGate
from reply_bridge.exceptions import (
    DuplicateTransactionError,
    InvalidDestinationError,
    StorageError,
    TransportNotConnectedError,
    TransportSendError,
)
from reply_bridge.models import (
    ForwardData,
    ForwardError,
    ForwardRequest,
    ForwardResponse,
    SendReceipt,
)
from reply_bridge.observability.logging import get_logger
from reply_bridge.transport.base import Transport

logger = get_logger(__name__)

MAX_FIELD_LENGTH = 4096

REQUIRED_PARAMETERS = ("destination", "trxid", "descriptions", "instructions")


def format_transaction_message(request: ForwardRequest) -> str:
    """Render the chat notification for a transaction."""
    return (
        "NEW TRANSACTION\n"
        "----------------\n"
        f"TRX ID: {request.trx_id}\n"
        f"Instructions:\n{request.instructions}\n\n"
        f"Notes:\n{request.descriptions}\n"
    )


def _error(status_code: int, code: str, message: str, **extra: object) -> tuple[int, ForwardResponse]:
    return status_code, ForwardResponse(
        status="error",
        message=message,
        error=ForwardError(error_code=code, message=message, **extra),  # type: ignore[arg-type]
    )


class TransactionForwarder:
    """Sends transaction notifications through the dedup gate.

    Attributes:
        transport: Chat transport used to resolve and send.
        gate: Dedup gate guarding each trx_id.
    """

    def __init__(self, transport: Transport, gate: DedupGate) -> None:
        self.transport = transport
        self.gate = gate

    async def forward(self, request: ForwardRequest) -> ForwardData:
        """Send a transaction notification once per active trx_id.

        Raises:
            DuplicateTransactionError: If the trx_id is still active.
            InvalidDestinationError: If the transport rejects the destination.
            TransportSendError: If sending fails.
        """
        text = format_transaction_message(request)

        async def send(destination: str) -> SendReceipt:
            address, kind = await self.transport.resolve_destination(destination)
            handle = await self.transport.send_text(address, text)
            return SendReceipt(
                message_handle=handle,
                destination_address=address,
                destination_kind=kind,
            )

        result = await self.gate.admit(request.trx_id, request.destination, send)
        record = result.record

        return ForwardData(
            trxid=record.trx_id,
            destination=record.destination_address,
            destination_type=record.destination_kind.value,
            message_id=record.message_handle,
            timestamp=record.sent_at,
        )

    async def handle(self, params: Mapping[str, str]) -> tuple[int, ForwardResponse]:
        """Validate raw request parameters and forward the transaction.

        Args:
            params: Request parameters keyed destination, trxid,
                descriptions and instructions.

        Returns:
            (status_code, response) ready to be serialized by the caller.
        """
        values = {name: (params.get(name) or "") for name in REQUIRED_PARAMETERS}

        if any(not value for value in values.values()):
            return _error(400, "ERR_MISSING_PARAMETER", "Missing required parameters")

        if (
            len(values["descriptions"]) > MAX_FIELD_LENGTH
            or len(values["instructions"]) > MAX_FIELD_LENGTH
        ):
            return _error(
                400,
                "ERR_INVALID_PARAMETER",
                f"Description or instruction too long (max {MAX_FIELD_LENGTH} chars)",
            )

        request = ForwardRequest(
            destination=values["destination"],
            trx_id=values["trxid"],
            descriptions=values["descriptions"],
            instructions=values["instructions"],
        )
        log = logger.bind(trx_id=request.trx_id)

        try:
            data = await self.forward(request)
        except DuplicateTransactionError as e:
            return _error(
                409,
                "ERR_DUPLICATE_TRANSACTION",
                "Transaction with this TrxID already exists and is still being tracked",
                existing_message_id=e.message_handle,
                sent_at=e.sent_at,
            )
        except InvalidDestinationError as e:
            log.warning("forward.invalid_destination", destination=e.destination, error=e.message)
            return _error(400, "ERR_INVALID_DESTINATION", e.message)
        except TransportNotConnectedError as e:
            log.error("forward.not_connected", error=e.message)
            return _error(503, "ERR_TRANSPORT_NOT_CONNECTED", e.message)
        except TransportSendError as e:
            log.error("forward.send_failed", destination=request.destination, error=e.message)
            return _error(502, "ERR_MESSAGE_SEND_FAILED", e.message)
        except StorageError as e:
            log.error("forward.storage_unavailable", error=e.message)
            return _error(503, "ERR_STORAGE_UNAVAILABLE", "Transaction store unavailable")
        except Exception as e:
            log.error("forward.internal_error", error=str(e), error_type=type(e).__name__)
            return _error(500, "ERR_INTERNAL_SERVER", "Internal server error")

        return 200, ForwardResponse(
            status="success",
            message="Transaction forwarded successfully",
            data=data,
        )
