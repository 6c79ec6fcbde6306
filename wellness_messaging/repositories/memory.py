import copy
from datetime import datetime
from typing import Dict, List, Optional

from bson import ObjectId

from wellness_messaging.exceptions import ConversationConflictError
from wellness_messaging.models.conversation import Conversation, make_pair_key
from wellness_messaging.models.message import Message
from wellness_messaging.repositories.base import ConversationStore, MessageStore


class InMemoryConversationRepository(ConversationStore):

    def __init__(self) -> None:
        self._items: Dict[str, Conversation] = {}
        # pair_key -> conversation id, mirrors the unique index in Mongo
        self._by_pair: Dict[str, str] = {}

    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        convo = self._items.get(conversation_id)
        return copy.copy(convo) if convo else None

    async def find_by_participants(self, user_a: int, user_b: int) -> Optional[Conversation]:
        convo_id = self._by_pair.get(make_pair_key(user_a, user_b))
        return await self.get_by_id(convo_id) if convo_id else None

    async def list_for_participant(self, user_id: int) -> List[Conversation]:
        return [copy.copy(c) for c in self._items.values() if c.has_participant(user_id)]

    async def insert(self, participant_a: int, participant_b: int, now: datetime) -> Conversation:
        key = make_pair_key(participant_a, participant_b)
        if key in self._by_pair:
            raise ConversationConflictError(key)
        convo = Conversation(
            id=str(ObjectId()),
            participant_a=participant_a,
            participant_b=participant_b,
            created_at=now,
            updated_at=now,
        )
        self._items[convo.id] = convo
        self._by_pair[key] = convo.id
        return copy.copy(convo)

    async def touch(self, conversation_id: str, now: datetime) -> None:
        convo = self._items.get(conversation_id)
        if convo:
            convo.updated_at = now


class InMemoryMessageRepository(MessageStore):

    def __init__(self) -> None:
        self._items: Dict[str, Message] = {}

    async def get_by_id(self, message_id: str) -> Optional[Message]:
        msg = self._items.get(message_id)
        return copy.copy(msg) if msg else None

    async def insert(self, conversation_id: str, sender_id: int, receiver_id: int, content: str, now: datetime) -> Message:
        msg = Message(
            id=str(ObjectId()),
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            sent_at=now,
        )
        self._items[msg.id] = msg
        return copy.copy(msg)

    async def list_by_conversation(self, conversation_id: str) -> List[Message]:
        items = [m for m in self._items.values() if m.conversation_id == conversation_id]
        items.sort(key=lambda m: (m.sent_at, m.id))
        return [copy.copy(m) for m in items]

    async def latest_in_conversation(self, conversation_id: str) -> Optional[Message]:
        items = await self.list_by_conversation(conversation_id)
        return items[-1] if items else None

    async def count_unread(self, conversation_id: str, receiver_id: int) -> int:
        return sum(
            1
            for m in self._items.values()
            if m.conversation_id == conversation_id and m.receiver_id == receiver_id and not m.is_read
        )

    async def mark_read(self, message_id: str, now: datetime) -> Optional[Message]:
        msg = self._items.get(message_id)
        if not msg:
            return None
        msg.mark_as_read(now)
        return copy.copy(msg)
