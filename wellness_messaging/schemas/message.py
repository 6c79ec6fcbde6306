from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from wellness_messaging.models.message import Message


class SendMessageRequest(BaseModel):

    sender_id: int
    receiver_id: int
    content: str


class ChatMessage(BaseModel):

    id: str
    conversation_id: str
    sender_id: int
    receiver_id: int
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    sent_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> "ChatMessage":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            content=message.content,
            is_read=message.is_read,
            read_at=message.read_at,
            sent_at=message.sent_at,
        )
