"""Read watermark derivation shared by the server snapshot and the client mirror.

All helpers take messages newest first and stop at the first match: only the newest
acknowledged message defines a watermark, even if older ones were read out of order.
"""

from typing import Iterable, Optional

from messenger.schemas.message import MessageOut


def last_read_by(messages: Iterable[MessageOut], user_id: str) -> Optional[str]:
    for message in messages:
        if user_id in message.reader_ids:
            return message.id
    return None


def count_unread(messages: Iterable[MessageOut], user_id: str) -> int:
    """Messages from anyone else that are newer than the user's own watermark."""
    count = 0
    for message in messages:
        if user_id in message.reader_ids:
            break
        if message.sender_id != user_id:
            count += 1
    return count


def unacknowledged_incoming(
    messages: Iterable[MessageOut], other_user_id: str, watermark_id: Optional[str]
) -> Optional[MessageOut]:
    """Newest message from the other user that is newer than our own watermark."""
    for message in messages:
        if watermark_id is not None and message.id == watermark_id:
            return None
        if message.sender_id == other_user_id:
            return message
    return None
