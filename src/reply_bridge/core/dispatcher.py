"""Webhook delivery with bounded retries and exponential backoff.

The dispatcher POSTs a correlated reply to the transaction system's webhook.
A delivery is one logical attempt plus up to ``retry_count`` retries, driven
by tenacity:

    attempt 1 -> wait base -> attempt 2 -> wait 2*base -> attempt 3 -> wait 4*base -> ...

Any 2xx response ends the delivery successfully. Any other status, timeout or
connection error counts as a failed attempt. When every attempt fails the
delivery raises DeliveryFailedError carrying the last error. Delivery is
best-effort: nothing is re-queued.

Backoff waits on a stop event, so a shutdown aborts pending retries instead
of letting them outlive the process.

Examples:
    >>> dispatcher = DeliveryDispatcher(
    ...     webhook_url="https://trx.example.com/hook",
    ...     timeout_seconds=10,
    ...     retry_count=3,
    ... )
    >>> attempts = await dispatcher.deliver(payload, trx_id="TRX1")
    >>> await dispatcher.aclose()
"""

import asyncio
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from reply_bridge import __version__
from reply_bridge.exceptions import DeliveryFailedError
from reply_bridge.models import WebhookPayload
from reply_bridge.observability.logging import get_logger
from reply_bridge.observability.metrics import record_delivery, record_delivery_attempt

logger = get_logger(__name__)

USER_AGENT = f"reply-bridge/{__version__}"


class WebhookStatusError(Exception):
    """The webhook answered with a non-2xx status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"unexpected status code: {status_code}")
        self.status_code = status_code


RETRYABLE_ERRORS: tuple[type[Exception], ...] = (httpx.HTTPError, WebhookStatusError)


class ShutdownRequested(Exception):
    """Raised from a backoff wait when the stop event fires."""


class DeliveryDispatcher:
    """Delivers webhook payloads with retry.

    Attributes:
        webhook_url: Endpoint receiving the payloads.
        retry_count: Retries after the first failed attempt.
        backoff_base_seconds: Delay before the first retry; doubles after
            every further failure.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        retry_count: int = 3,
        backoff_base_seconds: float = 1.0,
        client: httpx.AsyncClient | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            webhook_url: Endpoint receiving the payloads.
            timeout_seconds: Per-attempt HTTP timeout.
            retry_count: Retries after the first failed attempt.
            backoff_base_seconds: Delay before the first retry.
            client: HTTP client to use. When omitted the dispatcher creates
                and owns one, closed by aclose().
            stop_event: Shutdown signal that aborts pending retries.
        """
        self.webhook_url = webhook_url
        self.retry_count = retry_count
        self.backoff_base_seconds = backoff_base_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._stop_event = stop_event or asyncio.Event()

    def _retrying(self, log: Any) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            log.warning(
                "delivery.retrying",
                attempt=retry_state.attempt_number + 1,
                backoff_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.retry_count + 1),
            wait=wait_exponential(multiplier=self.backoff_base_seconds, exp_base=2),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=log_retry,
            sleep=self._sleep_or_abort,
            reraise=True,
        )

    async def deliver(self, payload: WebhookPayload, trx_id: str) -> int:
        """Deliver a payload, retrying with exponential backoff.

        Args:
            payload: Correlated reply to deliver.
            trx_id: Transaction the reply belongs to, for log correlation.

        Returns:
            The number of attempts used.

        Raises:
            DeliveryFailedError: If every attempt failed or shutdown
                interrupted the retries.
        """
        log = logger.bind(trx_id=trx_id)
        body = payload.to_wire()
        attempt_number = 0
        last_error: Exception | None = None

        try:
            async for attempt in self._retrying(log):
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    try:
                        await self._send(body)
                    except RETRYABLE_ERRORS as e:
                        last_error = e
                        record_delivery_attempt(success=False)
                        log.warning(
                            "delivery.attempt_failed",
                            attempt=attempt_number,
                            error=str(e),
                            error_type=type(e).__name__,
                        )
                        raise
        except ShutdownRequested as e:
            log.warning("delivery.aborted", attempts=attempt_number, reason="shutdown")
            record_delivery("aborted")
            raise DeliveryFailedError(
                message=f"Webhook delivery aborted by shutdown after {attempt_number} attempts",
                trx_id=trx_id,
                attempts=attempt_number,
                last_error=last_error,
            ) from e
        except RETRYABLE_ERRORS as e:
            record_delivery("failed")
            raise DeliveryFailedError(
                message=f"Webhook delivery failed after {attempt_number} attempts: {e}",
                trx_id=trx_id,
                attempts=attempt_number,
                last_error=e,
            ) from e

        record_delivery_attempt(success=True)
        record_delivery("delivered")
        log.info("delivery.delivered", attempt=attempt_number)
        return attempt_number

    async def _send(self, body: dict) -> None:
        response = await self._client.post(
            self.webhook_url,
            json=body,
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )
        if not response.is_success:
            raise WebhookStatusError(response.status_code)

    async def _sleep_or_abort(self, seconds: float) -> None:
        """Backoff wait for tenacity; raises ShutdownRequested if the stop event fires."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise ShutdownRequested()

    async def aclose(self) -> None:
        """Close the HTTP client if the dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()
