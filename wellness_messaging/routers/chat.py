import asyncio
import json
import logging
from typing import Any, Dict, Optional

import jwt
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from wellness_messaging.config import ALLOWED_ORIGINS
from wellness_messaging.exceptions import MessagingError
from wellness_messaging.schemas.user import CurrentUser
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.services.delivery_gateway import CHANNEL_ERRORS, encode_frame
from wellness_messaging.utils.dependencies import get_chat_service
from wellness_messaging.utils.realtime_bus import user_channel
from wellness_messaging.utils.security import user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN_ORIGIN = 4403


def origin_allowed(origin: Optional[str]) -> bool:
    if origin is None or "*" in ALLOWED_ORIGINS:
        return True
    return origin in ALLOWED_ORIGINS


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, service: ChatService = Depends(get_chat_service)):
    # Token comes in as ?token=..., browsers cannot set headers on the handshake.
    if not origin_allowed(websocket.headers.get("origin")):
        logger.warning("WebSocket handshake rejected: origin %s not allowed", websocket.headers.get("origin"))
        await websocket.close(code=CLOSE_FORBIDDEN_ORIGIN)
        return
    token = websocket.query_params.get("token")
    if not token:
        logger.warning("WebSocket handshake rejected: missing token")
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return
    try:
        user = user_from_token(token)
    except jwt.InvalidTokenError as exc:
        logger.warning("WebSocket handshake rejected: %s", exc)
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    manager = websocket.app.state.connection_manager
    bus = websocket.app.state.bus
    await manager.connect(user.user_id, websocket)
    logger.info("WebSocket session opened for user %s", user.user_id)

    subscription = None
    sub_task = None
    if bus.enabled:
        # deliveries published by any instance reach this socket through Redis
        subscription = await bus.subscribe(user_channel(user.user_id), websocket.send_text)
        sub_task = asyncio.create_task(subscription.run())

    try:
        while True:
            data = await websocket.receive_text()
            await handle_frame(websocket, service, user, data)
    except WebSocketDisconnect:
        logger.info("WebSocket session closed for user %s", user.user_id)
    finally:
        manager.disconnect(user.user_id, websocket)
        if subscription is not None:
            await stop_subscription(subscription, sub_task)


async def stop_subscription(subscription, task: asyncio.Task) -> None:
    await subscription.cancel()
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Redis forwarding for a closed session failed")


async def handle_frame(websocket: WebSocket, service: ChatService, user: CurrentUser, data: str) -> None:
    try:
        frame = json.loads(data)
    except ValueError:
        await send_error(websocket, None, 400, "Frame is not valid JSON")
        return
    if not isinstance(frame, dict):
        await send_error(websocket, None, 400, "Frame must be a JSON object")
        return

    kind = frame.get("type")
    try:
        if kind == "chat.send":
            await service.send_message(user.user_id, int(frame["receiver_id"]), frame.get("content"))
        elif kind == "chat.read":
            await service.mark_message_as_read(str(frame["message_id"]), user.user_id)
        elif kind == "chat.typing":
            service.notify_typing(user.user_id, user.username, int(frame["receiver_id"]))
        else:
            await send_error(websocket, kind, 400, f"Unknown frame type: {kind}")
    except (KeyError, TypeError, ValueError):
        await send_error(websocket, kind, 400, f"Invalid {kind} payload")
    except MessagingError as exc:
        logger.info("Frame %s from user %s failed: %s", kind, user.user_id, exc.message)
        await send_error(websocket, kind, exc.status_code, exc.message)


async def send_error(websocket: WebSocket, kind: Optional[str], status_code: int, detail: str) -> None:
    payload: Dict[str, Any] = {"type": kind, "status": status_code, "detail": detail}
    await websocket.send_text(encode_frame(CHANNEL_ERRORS, payload))
