"""Reply correlator: matches inbound chat messages to tracked transactions.

For every inbound event the correlator:

1. Drops messages sent by the bridge's own account.
2. Drops messages from chats the whitelist rejects (logged at info).
3. Looks up the most recent active tracking record for the chat address
   and drops the message if there is none.
4. Builds a WebhookPayload carrying the tracked trx_id context.
5. Hands the payload to the dispatcher on a task of its own, so retry
   backoff for one reply never delays the next event.

Delivery failures are logged inside the delivery task. The event stream
never sees them.
"""

import asyncio

from reply_bridge.core.dispatcher import DeliveryDispatcher
from reply_bridge.core.whitelist import WhitelistFilter
from reply_bridge.exceptions import DeliveryFailedError
from reply_bridge.models import (
    InboundMessage,
    MessageContent,
    MessageContext,
    Sender,
    TrackingRecord,
    WebhookPayload,
)
from reply_bridge.observability.logging import get_logger
from reply_bridge.observability.metrics import record_inbound
from reply_bridge.storage.base import CorrelationStore
from reply_bridge.transport.addressing import user_part

logger = get_logger(__name__)


def build_payload(event: InboundMessage, record: TrackingRecord) -> WebhookPayload:
    """Combine an inbound message with the tracked record it answers.

    ``original_message_id`` is the tracked outbound handle unless the event
    quotes a specific message, in which case the quoted handle is used.
    """
    context = MessageContext(
        chat_type=record.destination_kind.value,
        is_reply=False,
        original_message_id=record.message_handle,
    )

    if event.quoted is not None:
        context.is_reply = True
        if event.quoted.message_id:
            context.original_message_id = event.quoted.message_id
        if event.quoted.content:
            context.quoted_message_content = event.quoted.content

    return WebhookPayload(
        sender=Sender(phone=user_part(event.from_address), name=event.sender_name),
        message=MessageContent(
            type=event.message_type,
            content=event.body_text,
            timestamp=event.timestamp,
        ),
        context=context,
    )


class ReplyCorrelator:
    """Correlates inbound messages and schedules their webhook delivery.

    Attributes:
        store: Correlation store queried on every event.
        whitelist: Filter applied to the chat address.
        dispatcher: Delivers correlated payloads.
    """

    def __init__(
        self,
        store: CorrelationStore,
        whitelist: WhitelistFilter,
        dispatcher: DeliveryDispatcher,
    ) -> None:
        self.store = store
        self.whitelist = whitelist
        self.dispatcher = dispatcher
        self._deliveries: set[asyncio.Task[None]] = set()

    @property
    def pending_deliveries(self) -> int:
        return len(self._deliveries)

    async def handle(self, event: InboundMessage) -> asyncio.Task[None] | None:
        """Correlate one inbound event.

        Returns:
            The delivery task if the event was correlated, None if it was
            discarded.
        """
        if event.is_from_me:
            record_inbound("self")
            return None

        if not self.whitelist.is_allowed(event.chat_address):
            record_inbound("rejected")
            logger.info("correlator.not_whitelisted", chat_address=event.chat_address)
            return None

        try:
            record = await self.store.find_active_by_destination(event.chat_address)
        except Exception as e:
            record_inbound("lookup_failed")
            logger.error(
                "correlator.lookup_failed",
                chat_address=event.chat_address,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if record is None:
            record_inbound("unmatched")
            logger.debug("correlator.unmatched", chat_address=event.chat_address)
            return None

        record_inbound("correlated")
        payload = build_payload(event, record)
        logger.bind(trx_id=record.trx_id).info(
            "correlator.correlated",
            chat_address=event.chat_address,
            sender=payload.sender.phone,
            is_reply=payload.context.is_reply,
        )

        task = asyncio.create_task(
            self._deliver(payload, record.trx_id),
            name=f"reply-bridge-delivery-{record.trx_id}",
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task

    async def _deliver(self, payload: WebhookPayload, trx_id: str) -> None:
        log = logger.bind(trx_id=trx_id)
        try:
            await self.dispatcher.deliver(payload, trx_id)
        except DeliveryFailedError as e:
            log.error(
                "correlator.delivery_failed",
                attempts=e.attempts,
                error=str(e.last_error) if e.last_error else e.message,
                sender=payload.sender.phone,
            )
            return
        except Exception as e:
            log.error(
                "correlator.delivery_crashed",
                error=str(e),
                error_type=type(e).__name__,
                sender=payload.sender.phone,
            )
            return

        log.info(
            "correlator.forwarded",
            sender=payload.sender.phone,
            message=payload.message.content,
        )

    async def drain(self, timeout: float) -> None:
        """Wait for outstanding deliveries, cancelling any still running after ``timeout``."""
        if not self._deliveries:
            return

        pending = set(self._deliveries)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("correlator.drain_timeout", cancelled=len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
