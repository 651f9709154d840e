from datetime import datetime
from typing import List, Optional

from pydantic import Field

from messenger.schemas.base import CamelModel
from messenger.schemas.user import OtherUser


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: datetime
    reader_ids: List[str] = Field(default_factory=list)


class SendMessageRequest(CamelModel):

    recipient_id: str
    text: str
    # null when the client has no conversation with the recipient yet
    conversation_id: Optional[str] = None
    # accepted for compatibility, the server uses the authenticated user
    sender: Optional[dict] = None


class SendMessageResponse(CamelModel):

    message: MessageOut
    # only set when this message created the conversation
    sender: Optional[OtherUser] = None


class MarkReadRequest(CamelModel):

    id: str
    sender_id: Optional[str] = None
    conversation_id: Optional[str] = None
