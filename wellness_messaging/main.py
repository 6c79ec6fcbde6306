import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from wellness_messaging.clients.directory_client import DirectoryClient
from wellness_messaging.config import ALLOWED_ORIGINS, HOST, PORT, STORAGE_BACKEND
from wellness_messaging.database.connection import close_mongo_connection, connect_to_mongo
from wellness_messaging.exceptions import ForbiddenError, MessagingError
from wellness_messaging.logging_config import setup_logging
from wellness_messaging.repositories.conversation_repository import ConversationRepository
from wellness_messaging.repositories.memory import InMemoryConversationRepository, InMemoryMessageRepository
from wellness_messaging.repositories.message_repository import MessageRepository
from wellness_messaging.routers.chat import router as chat_router
from wellness_messaging.routers.conversations import router as conversations_router
from wellness_messaging.routers.messages import router as messages_router
from wellness_messaging.routers.users import router as users_router
from wellness_messaging.services.chat_service import ChatService
from wellness_messaging.services.delivery_gateway import DeliveryGateway
from wellness_messaging.utils.realtime_bus import close_bus, get_bus
from wellness_messaging.utils.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


async def build_repositories():
    if STORAGE_BACKEND == "memory":
        logger.info("Using in-memory storage")
        return InMemoryMessageRepository(), InMemoryConversationRepository()
    db = await connect_to_mongo()
    message_repo = MessageRepository(db)
    conversation_repo = ConversationRepository(db)
    await message_repo.ensure_indexes()
    await conversation_repo.ensure_indexes()
    return message_repo, conversation_repo


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    message_repo, conversation_repo = await build_repositories()
    bus = await get_bus()
    manager = ConnectionManager()
    gateway = DeliveryGateway(manager, bus)
    directory = DirectoryClient()
    await gateway.start()

    app.state.bus = bus
    app.state.connection_manager = manager
    app.state.gateway = gateway
    app.state.chat_service = ChatService(message_repo, conversation_repo, directory, gateway)
    try:
        yield
    finally:
        await gateway.stop()
        await directory.aclose()
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="Wellness Messaging", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials="*" not in ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, exc: MessagingError):
    if isinstance(exc, ForbiddenError):
        logger.warning("Forbidden %s %s: %s", request.method, request.url.path, exc.message)
    elif exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.include_router(messages_router)
app.include_router(conversations_router)
app.include_router(users_router)
app.include_router(chat_router)


@app.get("/")
async def root():
    return {"service": "wellness-messaging", "storage": STORAGE_BACKEND}


def run() -> None:
    import uvicorn

    uvicorn.run("wellness_messaging.main:app", host=HOST, port=PORT)
