import logging
from typing import Any, Dict, Tuple

from pymongo.errors import DuplicateKeyError

from messenger.errors import ConversationNotFound
from messenger.repositories.conversation_repository import ConversationRepository


logger = logging.getLogger(__name__)


class ConversationResolver:
    """Find or create the single conversation shared by two users.

    Lookup then create is a check-then-act race when two strangers message each other
    at the same moment. The unique ``pair_key`` index lets exactly one insert win; the
    loser gets DuplicateKeyError and re-reads the winner's row.
    """

    def __init__(self, conversation_repo: ConversationRepository, max_attempts: int = 3) -> None:
        self._conversation_repo = conversation_repo
        self._max_attempts = max(1, max_attempts)

    async def resolve(self, user_a: str, user_b: str) -> Dict[str, Any]:
        conversation, _ = await self.resolve_or_create(user_a, user_b)
        return conversation

    async def resolve_or_create(self, user_a: str, user_b: str) -> Tuple[Dict[str, Any], bool]:
        """Returns the conversation and whether this call created it."""
        for attempt in range(1, self._max_attempts + 1):
            existing = await self._conversation_repo.find_by_pair(user_a, user_b)
            if existing:
                return existing, False
            try:
                created = await self._conversation_repo.insert_for_pair(user_a, user_b)
            except DuplicateKeyError:
                logger.warning(
                    "Lost conversation create race for %s/%s (attempt %d), re-resolving",
                    user_a, user_b, attempt,
                )
                continue
            logger.info("Created conversation %s for %s/%s", created["_id"], user_a, user_b)
            return created, True
        raise ConversationNotFound(ConversationRepository.pair_key(user_a, user_b))
