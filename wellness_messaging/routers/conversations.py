from fastapi import APIRouter, Depends

from wellness_messaging.schemas.conversation import ConversationDetail, ConversationSummary, CreateConversationRequest
from wellness_messaging.schemas.user import CurrentUser
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.utils.dependencies import ensure_acting_as, get_chat_service, get_current_user


router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.post("", response_model=ConversationSummary)
async def create_or_get_conversation(body: CreateConversationRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    ensure_acting_as(current_user, body.sender_id, "You can only create conversations as yourself.")
    return await service.create_or_get_conversation(body.sender_id, body.receiver_id)


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.get_conversation_details(conversation_id, current_user.user_id)
