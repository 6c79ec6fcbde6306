from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    _id: Any
    conversation_id: Any
    sender_id: int
    receiver_id: int
    content: str
    sent_at: datetime
    # read state; read_at is set iff is_read
    is_read: bool
    read_at: Optional[datetime]


@dataclass
class Message:
    id: str
    conversation_id: str
    sender_id: int
    receiver_id: int
    content: str
    sent_at: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None

    def mark_as_read(self, now: datetime) -> bool:
        """Flip to read once. Returns False if the message was already read."""
        if self.is_read:
            return False
        self.is_read = True
        self.read_at = now
        return True

    @classmethod
    def from_document(cls, doc: MessageDocument) -> "Message":
        return cls(
            id=str(doc["_id"]),
            conversation_id=str(doc["conversation_id"]),
            sender_id=doc["sender_id"],
            receiver_id=doc["receiver_id"],
            content=doc["content"],
            sent_at=doc["sent_at"],
            is_read=bool(doc.get("is_read", False)),
            read_at=doc.get("read_at"),
        )
