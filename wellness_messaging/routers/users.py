from typing import List

from fastapi import APIRouter, Depends

from wellness_messaging.schemas.conversation import ConversationSummary
from wellness_messaging.schemas.user import CurrentUser, Profile
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.utils.dependencies import ensure_acting_as, get_chat_service, get_current_user


router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}/conversations", response_model=List[ConversationSummary])
async def list_conversations(user_id: int, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    ensure_acting_as(current_user, user_id, "You are not authorized to access these resources.")
    return await service.get_conversation_summaries(user_id)


@router.get("/{user_id}/contacts", response_model=List[Profile])
async def list_contacts(user_id: int, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    ensure_acting_as(current_user, user_id, "You can only view your own contacts.")
    return await service.list_contacts(user_id)
