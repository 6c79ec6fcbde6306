import os

# Config is read at import time.
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("JWT_SECRET", "test-secret")

import asyncio
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from wellness_messaging import config
from wellness_messaging.exceptions import NotFoundError, UpstreamUnavailableError
from wellness_messaging.repositories.memory import InMemoryConversationRepository, InMemoryMessageRepository
from wellness_messaging.schemas.user import Profile
from wellness_messaging.services.chat_service import ChatService


class FakeDirectory:

    def __init__(self) -> None:
        self.profiles = {}
        self.contacts = {}
        self.unavailable = set()
        self.delay = 0.0
        self.calls = []

    def add(self, user_id: int, display_name: str) -> None:
        self.profiles[user_id] = Profile(id=user_id, display_name=display_name)

    async def resolve_profile(self, user_id: int) -> Profile:
        self.calls.append(user_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if user_id in self.unavailable:
            raise UpstreamUnavailableError(f"directory down for {user_id}")
        if user_id not in self.profiles:
            raise NotFoundError(f"no profile {user_id}")
        return self.profiles[user_id]

    async def list_contacts(self, user_id: int):
        return self.contacts.get(user_id, [])


class RecordingGateway:

    def __init__(self) -> None:
        self.notifications = []
        self.events = []

    def notify_user(self, user_id, channel, payload) -> None:
        self.notifications.append((user_id, channel, payload))

    def publish_event(self, routing_key, payload) -> None:
        self.events.append((routing_key, payload))

    def sent_to(self, user_id, channel):
        return [p for u, c, p in self.notifications if u == user_id and c == channel]


class TickingClock:
    """Each call returns one second later than the previous one."""

    def __init__(self) -> None:
        self.current = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def directory():
    d = FakeDirectory()
    d.add(100, "Ana")
    d.add(200, "Bruno")
    d.add(300, "Carla")
    return d


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def message_repo():
    return InMemoryMessageRepository()


@pytest.fixture
def conversation_repo():
    return InMemoryConversationRepository()


@pytest.fixture
def service(message_repo, conversation_repo, directory, gateway, clock):
    return ChatService(message_repo, conversation_repo, directory, gateway, clock=clock)


@pytest.fixture
def token_for():
    def _token(user_id: int, username: str = "tester", expires_in: int = 300) -> str:
        now = int(time.time())
        return jwt.encode(
            {"sub": username, "userId": user_id, "iat": now, "exp": now + expires_in},
            config.JWT_SECRET,
            algorithm=config.JWT_ALGORITHM,
        )

    return _token
