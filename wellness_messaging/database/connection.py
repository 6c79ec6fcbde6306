import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from wellness_messaging.config import MONGO_DB_NAME, MONGO_URL

logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    global _client
    if _client is None:
        # tz_aware so stored timestamps come back as UTC-aware datetimes
        _client = AsyncIOMotorClient(MONGO_URL, tz_aware=True)
        logger.info("Connected to MongoDB database %s", MONGO_DB_NAME)
    return _client[MONGO_DB_NAME]


async def close_mongo_connection() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed")

