import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from messenger.client import reconcile
from messenger.client.reconcile import Mirror
from messenger.schemas.events import (
    ADD_ONLINE_USER,
    MESSAGE_READ,
    NEW_MESSAGE,
    REMOVE_OFFLINE_USER,
    MessageReadEvent,
    NewConversationMessage,
    PresenceEvent,
    new_message_adapter,
)
from messenger.schemas.message import MarkReadRequest, MessageOut, SendMessageRequest, SendMessageResponse
from messenger.schemas.user import OtherUser, UserPublic


logger = logging.getLogger(__name__)

_users_adapter = TypeAdapter(List[OtherUser])


class ChatSession:
    """Client-side owner of one user's conversation mirror.

    This is the only writer of ``conversations``. Each fact is folded in with one of the
    pure functions in ``reconcile`` and assigned back in a single step, so callers on one
    event loop never observe a half-applied update. Local actions touch the mirror only
    after the server acknowledged them; a failed request is logged and abandoned.
    """

    def __init__(self, http: httpx.AsyncClient, user: UserPublic) -> None:
        self._http = http
        self.user = user
        self.conversations: Mirror = []
        self.active_user_id: Optional[str] = None

    def conversation_with(self, user_id: str):
        return next((c for c in self.conversations if c.other_user.id == user_id), None)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Optional[httpx.Response]:
        try:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError:
            logger.exception("%s %s failed", method, url)
            return None
        return response

    async def load(self) -> bool:
        response = await self._request("GET", "/conversations")
        if response is None:
            return False
        self.conversations = reconcile.from_snapshot(response.json(), self.user.id)
        return True

    async def post_message(self, recipient_id: str, text: str, conversation_id: Optional[str] = None) -> Optional[MessageOut]:
        body = SendMessageRequest(
            recipient_id=recipient_id,
            text=text,
            conversation_id=conversation_id,
            sender=self.user.to_wire(),
        )
        response = await self._request("POST", "/messages", json=body.to_wire())
        if response is None:
            return None
        data = SendMessageResponse.model_validate(response.json())
        self.conversations = reconcile.commit_sent_message(self.conversations, data.message, recipient_id)
        return data.message

    async def set_active_chat(self, other_user_id: str) -> None:
        self.active_user_id = other_user_id
        self.conversations, to_ack = reconcile.open_conversation(self.conversations, other_user_id)
        if to_ack is not None:
            await self._acknowledge(to_ack)

    async def _acknowledge(self, message: MessageOut) -> None:
        body = MarkReadRequest(id=message.id, sender_id=message.sender_id, conversation_id=message.conversation_id)
        response = await self._request("PUT", "/messages/read", json=body.to_wire())
        if response is None:
            return
        self.conversations = reconcile.mark_read_by_me(self.conversations, message.conversation_id, message.id)

    async def search_users(self, username: str) -> List[OtherUser]:
        response = await self._request("GET", f"/users/{username}")
        if response is None:
            return []
        users = _users_adapter.validate_python(response.json())
        self.conversations = reconcile.add_search_drafts(self.conversations, users)
        return users

    def clear_search(self) -> None:
        self.conversations = reconcile.clear_search_drafts(self.conversations)

    async def handle_frame(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            frame = None
        if not isinstance(frame, dict):
            logger.warning("Dropping malformed frame: %.200s", raw)
            return
        await self.handle_event(frame.get("event", ""), frame.get("data") or {})

    async def handle_event(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            if event == NEW_MESSAGE:
                await self._on_new_message(payload)
            elif event == MESSAGE_READ:
                receipt = MessageReadEvent.model_validate(payload)
                self.conversations = reconcile.apply_read_receipt(
                    self.conversations, receipt.conversation_id, receipt.reader_id, receipt.message_id
                )
            elif event in (ADD_ONLINE_USER, REMOVE_OFFLINE_USER):
                presence = PresenceEvent.model_validate(payload)
                self.conversations = reconcile.set_online(self.conversations, presence.id, event == ADD_ONLINE_USER)
            else:
                logger.debug("Ignoring unknown event %s", event)
        except ValidationError:
            logger.warning("Dropping malformed %s event: %s", event, payload)

    async def _on_new_message(self, payload: Dict[str, Any]) -> None:
        event = new_message_adapter.validate_python(payload)
        if event.message.sender_id == self.user.id:
            # our own sends are applied from the POST response
            return
        if isinstance(event, NewConversationMessage):
            self.conversations, to_ack = reconcile.add_new_conversation(
                self.conversations, event.message, event.sender, self.active_user_id
            )
        else:
            self.conversations, to_ack = reconcile.append_message(self.conversations, event.message, self.active_user_id)
        if to_ack is not None:
            await self._acknowledge(to_ack)
