import asyncio
import logging
from typing import Dict, List

from fastapi import WebSocket

from wellness_messaging.config import DELIVERY_SEND_TIMEOUT_SECONDS
from wellness_messaging.exceptions import DeliveryFailedError

logger = logging.getLogger(__name__)


class ConnectionManager:

    def __init__(self, send_timeout: float = DELIVERY_SEND_TIMEOUT_SECONDS) -> None:
        self.active_connections: Dict[int, List[WebSocket]] = {}
        self._send_timeout = send_timeout

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        if user_id not in self.active_connections:
            self.active_connections[user_id] = []
        self.active_connections[user_id].append(websocket)
        logger.debug("User %s connected (%d sessions)", user_id, len(self.active_connections[user_id]))

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        if user_id in self.active_connections:
            try:
                self.active_connections[user_id].remove(websocket)
            except ValueError:
                pass
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]

    def is_connected(self, user_id: int) -> bool:
        return bool(self.active_connections.get(user_id))

    async def send_personal_message(self, receiver_id: int, message: str) -> int:
        """Send to every session of the user. Returns how many sessions got it."""
        delivered = 0
        failures = 0
        for conn in list(self.active_connections.get(receiver_id, [])):
            try:
                await asyncio.wait_for(conn.send_text(message), timeout=self._send_timeout)
                delivered += 1
            except asyncio.TimeoutError:
                failures += 1
                logger.warning("Session of user %s stalled for %ss, dropping it", receiver_id, self._send_timeout)
                self.disconnect(receiver_id, conn)
            except Exception as exc:
                failures += 1
                logger.debug("Dropping dead session of user %s: %s", receiver_id, exc)
                self.disconnect(receiver_id, conn)
        if failures and not delivered:
            raise DeliveryFailedError(f"No session of user {receiver_id} accepted the message")
        return delivered
