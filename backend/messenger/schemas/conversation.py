from typing import List, Optional

from pydantic import Field

from messenger.schemas.base import CamelModel
from messenger.schemas.message import MessageOut
from messenger.schemas.user import OtherUser


class ConversationView(CamelModel):
    """One conversation as seen by one user.

    The server returns it with messages newest first. The client mirror keeps the same
    shape with messages oldest first, and ``id`` is None for search drafts that have not
    been committed by a first message yet.
    """

    id: Optional[str] = None
    other_user: OtherUser
    messages: List[MessageOut] = Field(default_factory=list)
    latest_message_text: Optional[str] = None
    notification_count: int = 0
    last_read_by_me: Optional[str] = None
    last_read_by_other: Optional[str] = None
