import json
import logging
from typing import Optional

from messenger.schemas.base import CamelModel
from messenger.schemas.events import frame
from messenger.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

BROADCAST_CHANNEL = "broadcast"


def user_channel(user_id: str) -> str:
    return f"user:{user_id}"


class EventPublisher:
    """Fire-and-forget push of real-time events.

    With a Redis bus every socket subscribes to its user channel and the broadcast
    channel; without one, frames go straight to the in-process connection manager.
    Delivery failures are logged and never reach the caller.
    """

    def __init__(self, manager: ConnectionManager, bus) -> None:
        self._manager = manager
        self._bus = bus

    async def emit_to(self, user_id: str, event: str, payload: CamelModel) -> None:
        message = json.dumps(frame(event, payload))
        try:
            if self._bus.enabled:
                await self._bus.publish(user_channel(user_id), message)
            else:
                await self._manager.send_personal_message(user_id, message)
        except Exception:
            logger.exception("Failed to deliver %s to user %s", event, user_id)

    async def broadcast(self, event: str, payload: CamelModel, exclude: Optional[str] = None) -> None:
        data = frame(event, payload)
        try:
            if self._bus.enabled:
                await self._bus.publish(BROADCAST_CHANNEL, json.dumps({**data, "exclude": exclude}))
            else:
                await self._manager.broadcast(json.dumps(data), exclude=exclude)
        except Exception:
            logger.exception("Failed to broadcast %s", event)
