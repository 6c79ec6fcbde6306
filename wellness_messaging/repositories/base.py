"""
Persistence ports used by ChatService.

Implementations:
- conversation_repository.py / message_repository.py (MongoDB via Motor)
- memory.py (in-process, for development and tests)
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from wellness_messaging.models.conversation import Conversation
from wellness_messaging.models.message import Message


class ConversationStore(ABC):

    @abstractmethod
    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    async def find_by_participants(self, user_a: int, user_b: int) -> Optional[Conversation]:
        """Lookup by unordered pair: (a, b) and (b, a) match the same row."""

    @abstractmethod
    async def list_for_participant(self, user_id: int) -> List[Conversation]: ...

    @abstractmethod
    async def insert(self, participant_a: int, participant_b: int, now: datetime) -> Conversation:
        """Create a conversation; raises ConversationConflictError if the pair exists."""

    @abstractmethod
    async def touch(self, conversation_id: str, now: datetime) -> None: ...


class MessageStore(ABC):

    @abstractmethod
    async def get_by_id(self, message_id: str) -> Optional[Message]: ...

    @abstractmethod
    async def insert(
        self,
        conversation_id: str,
        sender_id: int,
        receiver_id: int,
        content: str,
        now: datetime,
    ) -> Message: ...

    @abstractmethod
    async def list_by_conversation(self, conversation_id: str) -> List[Message]:
        """All messages, sent_at ascending, ties by id."""

    @abstractmethod
    async def latest_in_conversation(self, conversation_id: str) -> Optional[Message]: ...

    @abstractmethod
    async def count_unread(self, conversation_id: str, receiver_id: int) -> int: ...

    @abstractmethod
    async def mark_read(self, message_id: str, now: datetime) -> Optional[Message]:
        """Set is_read/read_at only if still unread; return the current state."""
