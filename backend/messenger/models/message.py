from datetime import datetime
from typing import List, TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    text: str
    created_at: datetime
    # users who acknowledged the message, each at most once
    reader_ids: List[str]
