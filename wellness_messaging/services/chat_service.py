import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from wellness_messaging.clients.directory_client import DirectoryClient
from wellness_messaging.config import (
    MAX_MESSAGE_LENGTH,
    READ_DEADLINE_SECONDS,
    ROUTING_KEY_MESSAGE_READ,
    ROUTING_KEY_MESSAGE_SENT,
)
from wellness_messaging.exceptions import (
    ConversationConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
    UpstreamUnavailableError,
)
from wellness_messaging.models.conversation import Conversation
from wellness_messaging.models.message import Message
from wellness_messaging.repositories.base import ConversationStore, MessageStore
from wellness_messaging.schemas.conversation import ConversationDetail, ConversationSummary
from wellness_messaging.schemas.message import ChatMessage
from wellness_messaging.schemas.user import Profile
from wellness_messaging.services.delivery_gateway import (
    CHANNEL_MESSAGES,
    CHANNEL_READ_RECEIPTS,
    CHANNEL_TYPING,
    DeliveryGateway,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatService:
    """
    Conversation/message engine.

    Persistence always completes before any notification is queued, and
    notifications never fail a call. Participation is re-checked here even
    when the API layer already filtered the request.
    """

    def __init__(
        self,
        message_repo: MessageStore,
        conversation_repo: ConversationStore,
        directory: DirectoryClient,
        gateway: DeliveryGateway,
        *,
        max_message_length: int = MAX_MESSAGE_LENGTH,
        read_deadline_seconds: float = READ_DEADLINE_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._directory = directory
        self._gateway = gateway
        self._max_message_length = max_message_length
        self._read_deadline_seconds = read_deadline_seconds
        self._now = clock or _utcnow

    # ----- writes -----

    async def send_message(self, sender_id: int, receiver_id: int, content: str) -> Message:
        self._validate_pair(sender_id, receiver_id)
        self._validate_content(content)
        logger.info("Sending message from user %s to user %s", sender_id, receiver_id)

        convo = await self._find_or_create(sender_id, receiver_id)
        now = self._now()
        # touched even right after creation
        await self._conversation_repo.touch(convo.id, now)
        saved = await self._message_repo.insert(convo.id, sender_id, receiver_id, content, now)
        logger.info("Message %s saved in conversation %s", saved.id, convo.id)

        payload = ChatMessage.from_entity(saved).model_dump(mode="json")
        self._notify(receiver_id, CHANNEL_MESSAGES, payload)
        # self-echo keeps the sender's other devices in sync
        self._notify(sender_id, CHANNEL_MESSAGES, payload)
        self._publish(ROUTING_KEY_MESSAGE_SENT, payload)
        return saved

    async def create_or_get_conversation(self, sender_id: int, receiver_id: int) -> ConversationSummary:
        self._validate_pair(sender_id, receiver_id)
        logger.info("Creating or getting conversation between user %s and user %s", sender_id, receiver_id)

        convo = await self._find_or_create(sender_id, receiver_id)
        convo.updated_at = self._now()
        await self._conversation_repo.touch(convo.id, convo.updated_at)
        return await self._with_deadline(self._build_summary(convo, sender_id), "conversation summary")

    async def mark_message_as_read(self, message_id: str, requesting_user_id: int) -> Message:
        logger.info("User %s marking message %s as read", requesting_user_id, message_id)
        message = await self._message_repo.get_by_id(message_id)
        if message is None:
            raise NotFoundError(f"Message not found with id: {message_id}")

        if message.receiver_id != requesting_user_id:
            logger.warning(
                "Security alert: user %s tried to mark message %s addressed to user %s",
                requesting_user_id,
                message_id,
                message.receiver_id,
            )
            raise ForbiddenError("You can only mark messages addressed to you as read.")

        if message.is_read:
            logger.info("Message %s was already marked as read", message_id)
            return message

        updated = await self._message_repo.mark_read(message_id, self._now())
        if updated is None:
            raise NotFoundError(f"Message not found with id: {message_id}")
        logger.info("Message %s marked as read", message_id)

        self._notify(updated.sender_id, CHANNEL_READ_RECEIPTS, updated.id)
        self._publish(
            ROUTING_KEY_MESSAGE_READ,
            {"message_id": updated.id, "conversation_id": updated.conversation_id, "reader_id": requesting_user_id},
        )
        return updated

    def notify_typing(self, sender_id: int, display_name: Optional[str], receiver_id: int) -> None:
        if sender_id == receiver_id:
            return
        logger.debug("User %s typing to %s", sender_id, receiver_id)
        self._notify(receiver_id, CHANNEL_TYPING, {"user_id": sender_id, "display_name": display_name})

    # ----- reads -----

    async def get_conversation_summaries(self, user_id: int) -> List[ConversationSummary]:
        logger.info("Fetching conversation summaries for user %s", user_id)

        async def _collect() -> List[ConversationSummary]:
            conversations = await self._conversation_repo.list_for_participant(user_id)
            return list(await asyncio.gather(*(self._build_summary(c, user_id) for c in conversations)))

        summaries = await self._with_deadline(_collect(), "conversation summaries")
        summaries.sort(key=lambda s: s.last_message_at, reverse=True)
        return summaries

    async def get_conversation_details(self, conversation_id: str, requesting_user_id: int) -> ConversationDetail:
        logger.info("Fetching conversation %s for user %s", conversation_id, requesting_user_id)
        convo = await self._conversation_repo.get_by_id(conversation_id)
        if convo is None:
            raise NotFoundError(f"Conversation not found with id: {conversation_id}")

        if not convo.has_participant(requesting_user_id):
            logger.warning(
                "Security alert: user %s requested conversation %s without being a participant",
                requesting_user_id,
                conversation_id,
            )
            raise ForbiddenError("User is not a participant of this conversation.")

        async def _assemble() -> ConversationDetail:
            participant1 = await self._directory.resolve_profile(convo.participant_a)
            participant2 = await self._directory.resolve_profile(convo.participant_b)
            messages = await self._message_repo.list_by_conversation(convo.id)
            return ConversationDetail(
                id=convo.id,
                created_at=convo.created_at,
                updated_at=convo.updated_at,
                participant1=participant1,
                participant2=participant2,
                messages=[ChatMessage.from_entity(m) for m in messages],
            )

        return await self._with_deadline(_assemble(), "conversation details")

    async def get_message_by_id(self, message_id: str) -> Message:
        # No participant check here; callers that expose it must do their own.
        message = await self._message_repo.get_by_id(message_id)
        if message is None:
            raise NotFoundError(f"Message not found with id: {message_id}")
        return message

    async def list_contacts(self, user_id: int) -> List[Profile]:
        logger.info("Fetching contacts for user %s", user_id)
        return await self._directory.list_contacts(user_id)

    # ----- helpers -----

    async def _find_or_create(self, user_a: int, user_b: int) -> Conversation:
        convo = await self._conversation_repo.find_by_participants(user_a, user_b)
        if convo is not None:
            return convo

        logger.info("No conversation between %s and %s, creating one", user_a, user_b)
        try:
            return await self._conversation_repo.insert(user_a, user_b, self._now())
        except ConversationConflictError:
            # a concurrent request created it first
            convo = await self._conversation_repo.find_by_participants(user_a, user_b)
            if convo is None:
                raise UpstreamUnavailableError("Conversation vanished after a create conflict")
            return convo

    async def _build_summary(self, convo: Conversation, user_id: int) -> ConversationSummary:
        other = await self._directory.resolve_profile(convo.other_participant(user_id))
        last = await self._message_repo.latest_in_conversation(convo.id)
        unread = await self._message_repo.count_unread(convo.id, user_id)
        return ConversationSummary(
            id=convo.id,
            last_message_at=last.sent_at if last else convo.updated_at,
            other_participant=other,
            last_message=ChatMessage.from_entity(last) if last else None,
            unread_count=unread,
        )

    async def _with_deadline(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._read_deadline_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("Deadline of %ss exceeded building %s", self._read_deadline_seconds, what)
            raise UpstreamUnavailableError(f"Timed out building {what}") from exc

    def _validate_pair(self, sender_id: int, receiver_id: int) -> None:
        if sender_id == receiver_id:
            raise InvalidRequestError("Sender and receiver must be different users")

    def _validate_content(self, content: Optional[str]) -> None:
        if content is not None and not isinstance(content, str):
            raise InvalidRequestError("Message content must be text")
        if not content or not content.strip():
            raise InvalidRequestError("Message content cannot be empty")
        if len(content) > self._max_message_length:
            raise InvalidRequestError(f"Message content cannot exceed {self._max_message_length} characters")

    def _notify(self, user_id: int, channel: str, payload: Any) -> None:
        try:
            self._gateway.notify_user(user_id, channel, payload)
        except Exception:
            logger.exception("Could not queue %s notification for user %s", channel, user_id)

    def _publish(self, routing_key: str, payload: Any) -> None:
        try:
            self._gateway.publish_event(routing_key, payload)
        except Exception:
            logger.exception("Could not queue %s event", routing_key)
