"""Pure transformations of a user's conversation mirror.

Every function takes the current mirror (a list of ConversationView, messages oldest
first) and returns the next one without mutating its input. Facts about conversations
the mirror does not know are dropped: push events can race a snapshot load in either
direction.
"""

from typing import Any, Iterable, List, Optional, Sequence, Tuple

from messenger import watermarks
from messenger.schemas.conversation import ConversationView
from messenger.schemas.message import MessageOut
from messenger.schemas.user import OtherUser

Mirror = List[ConversationView]


def from_snapshot(snapshot: Iterable[Any], me_id: str) -> Mirror:
    """Build a mirror from the server's list, flipping messages to oldest first."""
    mirror: Mirror = []
    for item in snapshot:
        convo = ConversationView.model_validate(item)
        newest_first = convo.messages
        mirror.append(convo.model_copy(update={
            "messages": list(reversed(newest_first)),
            "latest_message_text": newest_first[0].text if newest_first else None,
            "notification_count": watermarks.count_unread(newest_first, me_id),
            "last_read_by_me": watermarks.last_read_by(newest_first, me_id),
            "last_read_by_other": watermarks.last_read_by(newest_first, convo.other_user.id),
        }))
    return mirror


def _with_message(convo: ConversationView, message: MessageOut) -> ConversationView:
    if any(m.id == message.id for m in convo.messages):
        return convo
    # a push can arrive after a newer local send, keep creation order
    messages = list(convo.messages)
    index = len(messages)
    while index > 0 and messages[index - 1].created_at > message.created_at:
        index -= 1
    messages.insert(index, message)
    return convo.model_copy(update={
        "messages": messages,
        "latest_message_text": messages[-1].text,
    })


def _has_message(convo: ConversationView, message_id: str) -> bool:
    return any(m.id == message_id for m in convo.messages)


def append_message(
    mirror: Sequence[ConversationView],
    message: MessageOut,
    active_user_id: Optional[str] = None,
) -> Tuple[Mirror, Optional[MessageOut]]:
    """Append a message to the conversation it belongs to.

    Returns the new mirror and the message to acknowledge as read, if any: an incoming
    message in the open conversation is acknowledged instead of counted.
    """
    to_ack = None
    result: Mirror = []
    for convo in mirror:
        if convo.id is None or convo.id != message.conversation_id or _has_message(convo, message.id):
            result.append(convo)
            continue
        updated = _with_message(convo, message)
        if message.sender_id == convo.other_user.id:
            if convo.other_user.id == active_user_id:
                to_ack = message
            else:
                updated = updated.model_copy(update={"notification_count": convo.notification_count + 1})
        result.append(updated)
    return result, to_ack


def add_new_conversation(
    mirror: Sequence[ConversationView],
    message: MessageOut,
    sender: OtherUser,
    active_user_id: Optional[str] = None,
) -> Tuple[Mirror, Optional[MessageOut]]:
    """Someone started a conversation with us.

    Known conversation ids fall back to a plain append. A search draft for the same
    user is promoted in place of adding a second entry.
    """
    if any(c.id == message.conversation_id for c in mirror):
        return append_message(mirror, message, active_user_id)

    draft = next((c for c in mirror if c.id is None and c.other_user.id == sender.id), None)
    rest = [c for c in mirror if c is not draft]
    is_active = sender.id == active_user_id
    convo = ConversationView(
        id=message.conversation_id,
        other_user=sender,
        messages=[message],
        latest_message_text=message.text,
        notification_count=0 if is_active else 1,
    )
    return [convo, *rest], message if is_active else None


def commit_sent_message(mirror: Sequence[ConversationView], message: MessageOut, recipient_id: str) -> Mirror:
    """Apply our own message once the server acknowledged it.

    The first message to someone turns their draft into a real conversation. If the
    mirror already holds that conversation (the other side won the create race) the
    message goes there and the draft is dropped.
    """
    if any(c.id == message.conversation_id for c in mirror):
        return [
            _with_message(c, message) if c.id == message.conversation_id else c
            for c in mirror
            if not (c.id is None and c.other_user.id == recipient_id)
        ]

    result: Mirror = []
    for convo in mirror:
        if convo.id is None and convo.other_user.id == recipient_id:
            convo = _with_message(convo, message).model_copy(update={"id": message.conversation_id})
        result.append(convo)
    return result


def add_search_drafts(mirror: Sequence[ConversationView], users: Iterable[OtherUser]) -> Mirror:
    """Append an empty draft for every searched user we have no conversation with."""
    known = {c.other_user.id for c in mirror}
    result = list(mirror)
    for user in users:
        if user.id not in known:
            result.append(ConversationView(other_user=user))
            known.add(user.id)
    return result


def clear_search_drafts(mirror: Sequence[ConversationView]) -> Mirror:
    return [c for c in mirror if c.id is not None]


def open_conversation(mirror: Sequence[ConversationView], other_user_id: str) -> Tuple[Mirror, Optional[MessageOut]]:
    """Zero the unread count and pick the newest incoming message to acknowledge.

    Nothing is acknowledged when the other side never wrote, or when their newest
    message is already our watermark.
    """
    to_ack = None
    result: Mirror = []
    for convo in mirror:
        if convo.other_user.id != other_user_id:
            result.append(convo)
            continue
        latest = watermarks.unacknowledged_incoming(reversed(convo.messages), other_user_id, convo.last_read_by_me)
        if latest is not None:
            to_ack = latest
        result.append(convo.model_copy(update={"notification_count": 0}))
    return result, to_ack


def set_online(mirror: Sequence[ConversationView], user_id: str, online: bool) -> Mirror:
    return [
        c.model_copy(update={"other_user": c.other_user.model_copy(update={"online": online})})
        if c.other_user.id == user_id else c
        for c in mirror
    ]


def apply_read_receipt(mirror: Sequence[ConversationView], conversation_id: str, reader_id: str, message_id: str) -> Mirror:
    """The other participant read one of our messages."""
    return [
        c.model_copy(update={"last_read_by_other": message_id})
        if c.id == conversation_id and c.other_user.id == reader_id else c
        for c in mirror
    ]


def _moves_forward(convo: ConversationView, message_id: str) -> bool:
    ids = [m.id for m in convo.messages]
    if convo.last_read_by_me not in ids or message_id not in ids:
        return True
    return ids.index(message_id) > ids.index(convo.last_read_by_me)


def mark_read_by_me(mirror: Sequence[ConversationView], conversation_id: str, message_id: str) -> Mirror:
    """Advance our own watermark. Acknowledgments finishing out of order never move it back."""
    return [
        c.model_copy(update={"last_read_by_me": message_id})
        if c.id == conversation_id and _moves_forward(c, message_id) else c
        for c in mirror
    ]
