from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from wellness_messaging.exceptions import ConversationConflictError, UpstreamUnavailableError
from wellness_messaging.models.conversation import Conversation, ConversationDocument, make_pair_key
from wellness_messaging.repositories.base import ConversationStore


def to_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class ConversationRepository(ConversationStore):

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("pair_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participant_a", ASCENDING)])
        await self.collection.create_index([("participant_b", ASCENDING)])
        await self.collection.create_index([("updated_at", DESCENDING)])

    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self._find_one({"_id": oid})
        return Conversation.from_document(doc) if doc else None

    async def find_by_participants(self, user_a: int, user_b: int) -> Optional[Conversation]:
        doc = await self._find_one({"pair_key": make_pair_key(user_a, user_b)})
        return Conversation.from_document(doc) if doc else None

    async def list_for_participant(self, user_id: int) -> List[Conversation]:
        query = {"$or": [{"participant_a": user_id}, {"participant_b": user_id}]}
        try:
            items = await self.collection.find(query).sort("updated_at", DESCENDING).to_list(length=None)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Conversation lookup failed: {exc}") from exc
        return [Conversation.from_document(it) for it in items]

    async def insert(self, participant_a: int, participant_b: int, now: datetime) -> Conversation:
        doc: ConversationDocument = {
            "participant_a": participant_a,
            "participant_b": participant_b,
            "pair_key": make_pair_key(participant_a, participant_b),
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConversationConflictError(doc["pair_key"]) from exc
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Conversation insert failed: {exc}") from exc
        doc["_id"] = result.inserted_id
        return Conversation.from_document(doc)

    async def touch(self, conversation_id: str, now: datetime) -> None:
        try:
            await self.collection.update_one({"_id": ObjectId(conversation_id)}, {"$set": {"updated_at": now}})
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Conversation update failed: {exc}") from exc

    async def _find_one(self, query: Dict[str, Any]) -> Optional[ConversationDocument]:
        try:
            return await self.collection.find_one(query)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Conversation lookup failed: {exc}") from exc
