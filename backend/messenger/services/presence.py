import logging
from collections import Counter
from typing import Set


logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Currently connected user ids.

    Created once per process and mutated only by the socket connect/disconnect handlers.
    A user counts as online while at least one socket is open.
    """

    def __init__(self) -> None:
        self._connections: Counter = Counter()

    def connect(self, user_id: str) -> bool:
        """Register a socket. Returns True when the user just came online."""
        self._connections[user_id] += 1
        came_online = self._connections[user_id] == 1
        if came_online:
            logger.info("User %s is online", user_id)
        return came_online

    def disconnect(self, user_id: str) -> bool:
        """Drop a socket. Returns True when the user just went offline."""
        if self._connections[user_id] <= 0:
            del self._connections[user_id]
            return False
        self._connections[user_id] -= 1
        if self._connections[user_id] == 0:
            del self._connections[user_id]
            logger.info("User %s is offline", user_id)
            return True
        return False

    def is_online(self, user_id: str) -> bool:
        return self._connections[user_id] > 0

    def online_ids(self) -> Set[str]:
        return {uid for uid, count in self._connections.items() if count > 0}
