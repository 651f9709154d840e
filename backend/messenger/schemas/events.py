"""Real-time event contract.

Frames are ``{"event": <name>, "data": <payload>}``. ``new-message`` payloads are a tagged
variant so consumers never have to guess from the presence of a ``sender`` field.
"""

from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from messenger.schemas.base import CamelModel
from messenger.schemas.message import MessageOut
from messenger.schemas.user import OtherUser


NEW_MESSAGE = "new-message"
MESSAGE_READ = "message-read"
ADD_ONLINE_USER = "add-online-user"
REMOVE_OFFLINE_USER = "remove-offline-user"


class AppendMessage(CamelModel):

    kind: Literal["append"] = "append"
    message: MessageOut
    recipient_id: str


class NewConversationMessage(CamelModel):

    kind: Literal["new_conversation"] = "new_conversation"
    message: MessageOut
    recipient_id: str
    sender: OtherUser


NewMessageEvent = Annotated[Union[AppendMessage, NewConversationMessage], Field(discriminator="kind")]
new_message_adapter: TypeAdapter = TypeAdapter(NewMessageEvent)


class MessageReadEvent(CamelModel):

    conversation_id: str
    message_id: str
    reader_id: str
    sender_id: str


class PresenceEvent(CamelModel):

    id: str


def frame(event: str, payload: CamelModel) -> dict:
    return {"event": event, "data": payload.to_wire()}
