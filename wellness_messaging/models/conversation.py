from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: Any
    participant_a: int
    participant_b: int
    # sorted "low:high" ids; unique index
    pair_key: str
    created_at: datetime
    updated_at: datetime


def make_pair_key(user_a: int, user_b: int) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


@dataclass
class Conversation:
    id: str
    participant_a: int
    participant_b: int
    created_at: datetime
    updated_at: datetime

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.participant_a, self.participant_b)

    def other_participant(self, user_id: int) -> int:
        return self.participant_b if self.participant_a == user_id else self.participant_a

    @classmethod
    def from_document(cls, doc: ConversationDocument) -> "Conversation":
        return cls(
            id=str(doc["_id"]),
            participant_a=doc["participant_a"],
            participant_b=doc["participant_b"],
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )
