import logging

from messenger.errors import MessageNotFound, NotAParticipant
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.message_repository import MessageRepository
from messenger.schemas.events import MESSAGE_READ, MessageReadEvent
from messenger.utils.events import EventPublisher


logger = logging.getLogger(__name__)


class ReadReceiptRecorder:

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository, events: EventPublisher) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._events = events

    async def mark_read(self, message_id: str, reader_id: str) -> bool:
        """Record that reader_id has seen message_id.

        Idempotent: a repeated call leaves the reader set unchanged, returns False and
        sends nothing. The sender is notified once, when the pair first becomes read.
        """
        message = await self._message_repo.get_by_id(message_id)
        if message is None:
            logger.warning("User %s tried to mark missing message %s as read", reader_id, message_id)
            raise MessageNotFound(message_id)

        conversation = await self._conversation_repo.get_by_id(message["conversation_id"])
        if conversation is None or reader_id not in conversation["participants"]:
            raise NotAParticipant(reader_id, message["conversation_id"])

        newly_read = await self._message_repo.add_reader(message_id, reader_id)
        if not newly_read:
            return False

        if message["sender_id"] != reader_id:
            await self._events.emit_to(
                message["sender_id"],
                MESSAGE_READ,
                MessageReadEvent(
                    conversation_id=message["conversation_id"],
                    message_id=message["_id"],
                    reader_id=reader_id,
                    sender_id=message["sender_id"],
                ),
            )
        return True
