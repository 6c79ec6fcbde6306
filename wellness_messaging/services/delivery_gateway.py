"""
Best-effort real-time delivery.

notify_user() only enqueues; a worker task started with the app does the
actual send, so a slow or broken transport never holds up a write. With Redis
configured, envelopes go to the per-user pub/sub channel and every instance
forwards them to its own sockets; otherwise they go straight to the local
ConnectionManager.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from redis.exceptions import RedisError

from wellness_messaging.config import (
    DELIVERY_QUEUE_SIZE,
    DELIVERY_SEND_TIMEOUT_SECONDS,
    DELIVERY_SHUTDOWN_TIMEOUT_SECONDS,
    EVENTS_EXCHANGE,
)
from wellness_messaging.exceptions import DeliveryFailedError
from wellness_messaging.utils.realtime_bus import user_channel
from wellness_messaging.utils.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

CHANNEL_MESSAGES = "messages"
CHANNEL_READ_RECEIPTS = "read-receipts"
CHANNEL_TYPING = "typing"
CHANNEL_ERRORS = "errors"


@dataclass(frozen=True)
class Envelope:
    channel: str
    payload: Any
    # None means a domain event published on the events exchange
    user_id: Optional[int] = None


def encode_frame(channel: str, payload: Any) -> str:
    return json.dumps({"channel": channel, "payload": payload}, default=str)


class DeliveryGateway:

    def __init__(
        self,
        manager: ConnectionManager,
        bus,
        queue_size: int = DELIVERY_QUEUE_SIZE,
        *,
        publish_timeout: float = DELIVERY_SEND_TIMEOUT_SECONDS,
        shutdown_timeout: float = DELIVERY_SHUTDOWN_TIMEOUT_SECONDS,
    ) -> None:
        self._manager = manager
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._publish_timeout = publish_timeout
        self._shutdown_timeout = shutdown_timeout

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="delivery-gateway")

    async def stop(self) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=self._shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Delivery queue not drained within %ss, dropping %d envelopes", self._shutdown_timeout, self._queue.qsize())
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def notify_user(self, user_id: int, channel: str, payload: Any) -> None:
        self._enqueue(Envelope(channel=channel, payload=payload, user_id=user_id))

    def publish_event(self, routing_key: str, payload: Any) -> None:
        self._enqueue(Envelope(channel=routing_key, payload=payload))

    async def drain(self) -> None:
        """Wait until everything queued so far has been handled."""
        if self._worker is None:
            while not self._queue.empty():
                await self._handle(self._queue.get_nowait())
            return
        await self._queue.join()

    def _enqueue(self, envelope: Envelope) -> None:
        try:
            self._queue.put_nowait(envelope)
        except asyncio.QueueFull:
            logger.warning("Delivery queue full, dropping %s for user %s", envelope.channel, envelope.user_id)

    async def _run(self) -> None:
        while True:
            envelope = await self._queue.get()
            await self._handle(envelope)

    async def _handle(self, envelope: Envelope) -> None:
        try:
            await self._deliver(envelope)
        except DeliveryFailedError as exc:
            logger.warning("Delivery failed: %s", exc)
        except Exception:
            logger.exception("Unexpected error delivering %s to user %s", envelope.channel, envelope.user_id)
        finally:
            self._queue.task_done()

    async def _deliver(self, envelope: Envelope) -> None:
        if envelope.user_id is None:
            await self._publish(f"{EVENTS_EXCHANGE}.{envelope.channel}", json.dumps(envelope.payload, default=str))
            logger.debug("Event %s published", envelope.channel)
            return

        frame = encode_frame(envelope.channel, envelope.payload)
        if self._bus.enabled:
            await self._publish(user_channel(envelope.user_id), frame)
        else:
            sent = await self._manager.send_personal_message(envelope.user_id, frame)
            if not sent:
                logger.debug("User %s has no open session for %s", envelope.user_id, envelope.channel)
                return
        logger.debug("Delivered %s to user %s", envelope.channel, envelope.user_id)

    async def _publish(self, channel: str, message: str) -> None:
        try:
            await asyncio.wait_for(self._bus.publish(channel, message), timeout=self._publish_timeout)
        except asyncio.TimeoutError as exc:
            raise DeliveryFailedError(f"Publish on {channel} timed out") from exc
        except RedisError as exc:
            raise DeliveryFailedError(f"Publish on {channel} failed: {exc}") from exc
