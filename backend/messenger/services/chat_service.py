import logging
from datetime import timezone
from typing import Any, Dict, List, Optional, Tuple

from messenger.errors import ConversationNotFound, InvalidMessage, NotAParticipant
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.message_repository import MessageRepository
from messenger.repositories.user_repository import UserRepository
from messenger.schemas.conversation import ConversationView
from messenger.schemas.events import NEW_MESSAGE, AppendMessage, NewConversationMessage
from messenger.schemas.message import MessageOut
from messenger.schemas.user import OtherUser
from messenger.services.conversation_resolver import ConversationResolver
from messenger.services.presence import PresenceRegistry
from messenger.utils.events import EventPublisher
from messenger import watermarks


logger = logging.getLogger(__name__)


def message_out(doc: Dict[str, Any]) -> MessageOut:
    created_at = doc["created_at"]
    if created_at.tzinfo is None:
        # MongoDB hands back naive UTC datetimes
        created_at = created_at.replace(tzinfo=timezone.utc)
    return MessageOut(
        id=doc["_id"],
        conversation_id=doc["conversation_id"],
        sender_id=doc["sender_id"],
        text=doc["text"],
        created_at=created_at,
        reader_ids=list(doc.get("reader_ids") or []),
    )


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        resolver: ConversationResolver,
        presence: PresenceRegistry,
        events: EventPublisher,
        max_message_length: int = 2000,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._resolver = resolver
        self._presence = presence
        self._events = events
        self._max_message_length = max_message_length

    def _other_user(self, doc: Dict[str, Any]) -> OtherUser:
        return OtherUser(
            id=doc["_id"],
            username=doc["username"],
            photo_url=doc.get("photo_url"),
            online=self._presence.is_online(doc["_id"]),
        )

    async def list_conversations_for(self, user_id: str) -> List[ConversationView]:
        """Every conversation of user_id with full history, messages newest first.

        Conversations are ordered by their latest message, most recent first.
        """
        conversations = await self._conversation_repo.list_for_user(user_id)
        messages_by_convo = await self._message_repo.list_for_conversations([c["_id"] for c in conversations])
        other_ids = {pid for c in conversations for pid in c["participants"] if pid != user_id}
        users = await self._user_repo.get_users_by_ids(other_ids)

        views: List[ConversationView] = []
        for convo in conversations:
            other_id = next((pid for pid in convo["participants"] if pid != user_id), None)
            other_doc = users.get(other_id)
            if other_doc is None:
                logger.warning("Skipping conversation %s, user %s no longer exists", convo["_id"], other_id)
                continue
            messages = [message_out(m) for m in messages_by_convo.get(convo["_id"], [])]
            views.append(ConversationView(
                id=convo["_id"],
                other_user=self._other_user(other_doc),
                messages=messages,
                latest_message_text=messages[0].text if messages else None,
                notification_count=watermarks.count_unread(messages, user_id),
                last_read_by_me=watermarks.last_read_by(messages, user_id),
                last_read_by_other=watermarks.last_read_by(messages, other_id),
            ))
        views.sort(key=lambda v: (bool(v.messages), v.messages[0].created_at if v.messages else None), reverse=True)
        return views

    async def _conversation_of(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = await self._conversation_repo.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        if user_id not in conversation["participants"]:
            raise NotAParticipant(user_id, conversation_id)
        return conversation

    async def create_message(self, conversation_id: str, sender_id: str, text: str) -> MessageOut:
        """Append a message to an existing conversation. Commits before returning."""
        conversation = await self._conversation_of(conversation_id, sender_id)
        saved = await self._message_repo.save_message(conversation["_id"], sender_id, text)
        return message_out(saved)

    def _clean_text(self, text: str) -> str:
        text = (text or "").strip()
        if not text:
            raise InvalidMessage("Message text cannot be empty")
        if len(text) > self._max_message_length:
            raise InvalidMessage(f"Message text is longer than {self._max_message_length} characters")
        return text

    async def send_message(
        self,
        sender: Dict[str, Any],
        recipient_id: str,
        text: str,
        conversation_id: Optional[str] = None,
    ) -> Tuple[MessageOut, Optional[OtherUser]]:
        """Persist a message, then push it to the recipient.

        Without a conversation id the pair is resolved, creating the conversation if
        needed. The returned sender profile is set only when this call created it.
        """
        sender_id = sender["_id"]
        text = self._clean_text(text)
        if recipient_id == sender_id:
            raise InvalidMessage("Cannot send a message to yourself")

        created = False
        if conversation_id:
            conversation = await self._conversation_of(conversation_id, sender_id)
            recipient_id = next(pid for pid in conversation["participants"] if pid != sender_id)
        else:
            if await self._user_repo.get_user_by_id(recipient_id) is None:
                raise InvalidMessage(f"Unknown recipient {recipient_id}")
            conversation, created = await self._resolver.resolve_or_create(sender_id, recipient_id)
        message = message_out(await self._message_repo.save_message(conversation["_id"], sender_id, text))

        sender_view = self._other_user(sender) if created else None
        if sender_view is not None:
            event = NewConversationMessage(message=message, recipient_id=recipient_id, sender=sender_view)
        else:
            event = AppendMessage(message=message, recipient_id=recipient_id)
        # the sender already has the message from the response, never echo it back
        await self._events.emit_to(recipient_id, NEW_MESSAGE, event)
        return message, sender_view
