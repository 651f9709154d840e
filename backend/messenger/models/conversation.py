from datetime import datetime
from typing import List, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    # sorted pair of user ids
    participants: List[str]
    # "a:b" built from the sorted pair, unique index
    pair_key: str
    created_at: datetime
