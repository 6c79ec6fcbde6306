import logging

from fastapi import APIRouter, Depends, status

from wellness_messaging.exceptions import ForbiddenError
from wellness_messaging.schemas.message import ChatMessage, SendMessageRequest
from wellness_messaging.schemas.user import CurrentUser
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.utils.dependencies import ensure_acting_as, get_chat_service, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.post("", response_model=ChatMessage, status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    ensure_acting_as(current_user, body.sender_id, "You can only send messages as yourself.")
    saved = await service.send_message(body.sender_id, body.receiver_id, body.content)
    return ChatMessage.from_entity(saved)


@router.get("/{message_id}", response_model=ChatMessage)
async def get_message(message_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.get_message_by_id(message_id)
    # the engine does not filter by participant, so this route does
    if current_user.user_id not in (message.sender_id, message.receiver_id):
        logger.warning("Security alert: user %s tried to read message %s", current_user.user_id, message_id)
        raise ForbiddenError("You can only read messages you sent or received.")
    return ChatMessage.from_entity(message)


@router.post("/{message_id}/read", response_model=ChatMessage)
async def mark_read(message_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    updated = await service.mark_message_as_read(message_id, current_user.user_id)
    return ChatMessage.from_entity(updated)
