from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from wellness_messaging.schemas.message import ChatMessage
from wellness_messaging.schemas.user import Profile


class CreateConversationRequest(BaseModel):

    sender_id: int
    receiver_id: int


class ConversationSummary(BaseModel):

    id: str
    last_message_at: datetime
    other_participant: Profile
    last_message: Optional[ChatMessage] = None
    unread_count: int = 0


class ConversationDetail(BaseModel):

    id: str
    created_at: datetime
    updated_at: datetime
    participant1: Profile
    participant2: Profile
    messages: List[ChatMessage]
