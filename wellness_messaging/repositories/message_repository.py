from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from wellness_messaging.exceptions import UpstreamUnavailableError
from wellness_messaging.models.message import Message, MessageDocument
from wellness_messaging.repositories.base import MessageStore
from wellness_messaging.repositories.conversation_repository import to_object_id


class MessageRepository(MessageStore):

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("sent_at", ASCENDING), ("_id", ASCENDING)])
        await self.collection.create_index([("conversation_id", ASCENDING), ("receiver_id", ASCENDING), ("is_read", ASCENDING)])

    async def get_by_id(self, message_id: str) -> Optional[Message]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Message lookup failed: {exc}") from exc
        return Message.from_document(doc) if doc else None

    async def insert(self, conversation_id: str, sender_id: int, receiver_id: int, content: str, now: datetime) -> Message:
        doc: MessageDocument = {
            "conversation_id": ObjectId(conversation_id),
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "sent_at": now,
            "is_read": False,
            "read_at": None,
        }
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Message insert failed: {exc}") from exc
        doc["_id"] = result.inserted_id
        return Message.from_document(doc)

    async def list_by_conversation(self, conversation_id: str) -> List[Message]:
        query = {"conversation_id": ObjectId(conversation_id)}
        sort = [("sent_at", ASCENDING), ("_id", ASCENDING)]
        try:
            items = await self.collection.find(query).sort(sort).to_list(length=None)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Message history failed: {exc}") from exc
        return [Message.from_document(it) for it in items]

    async def latest_in_conversation(self, conversation_id: str) -> Optional[Message]:
        query = {"conversation_id": ObjectId(conversation_id)}
        sort = [("sent_at", DESCENDING), ("_id", DESCENDING)]
        try:
            items = await self.collection.find(query).sort(sort).limit(1).to_list(length=1)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Message lookup failed: {exc}") from exc
        return Message.from_document(items[0]) if items else None

    async def count_unread(self, conversation_id: str, receiver_id: int) -> int:
        query = {"conversation_id": ObjectId(conversation_id), "receiver_id": receiver_id, "is_read": False}
        try:
            return await self.collection.count_documents(query)
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Unread count failed: {exc}") from exc

    async def mark_read(self, message_id: str, now: datetime) -> Optional[Message]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        try:
            # conditional on is_read=False so concurrent readers keep the first read_at
            doc = await self.collection.find_one_and_update(
                {"_id": oid, "is_read": False},
                {"$set": {"is_read": True, "read_at": now}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is None:
                doc = await self.collection.find_one({"_id": oid})
        except PyMongoError as exc:
            raise UpstreamUnavailableError(f"Read receipt update failed: {exc}") from exc
        return Message.from_document(doc) if doc else None
