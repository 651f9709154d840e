class MessengerError(Exception):
    """Base class for domain errors raised by services and repositories."""


class ConversationNotFound(MessengerError):

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class MessageNotFound(MessengerError):

    def __init__(self, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found")
        self.message_id = message_id


class NotAParticipant(MessengerError):

    def __init__(self, user_id: str, conversation_id: str) -> None:
        super().__init__(f"User {user_id} is not part of conversation {conversation_id}")
        self.user_id = user_id
        self.conversation_id = conversation_id


class InvalidMessage(MessengerError):
    pass


class StorageUnavailable(MessengerError):
    pass
