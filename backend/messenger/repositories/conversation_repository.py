from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from messenger.database.connection import storage_errors
from messenger.models.conversation import ConversationDocument
from messenger.utils.object_ids import normalize, to_object_id


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    @staticmethod
    def pair_key(user_a: str, user_b: str) -> str:
        return ":".join(sorted([user_a, user_b]))

    @storage_errors
    async def ensure_indexes(self) -> None:
        # one conversation per unordered pair; concurrent creates lose with DuplicateKeyError
        await self.collection.create_index([("pair_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING)])

    @storage_errors
    async def find_by_pair(self, user_a: str, user_b: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"pair_key": self.pair_key(user_a, user_b)})
        return normalize(doc)

    @storage_errors
    async def insert_for_pair(self, user_a: str, user_b: str) -> ConversationDocument:
        """Insert the conversation for a pair. Raises DuplicateKeyError if it already exists."""
        doc: Dict[str, Any] = {
            "participants": sorted([user_a, user_b]),
            "pair_key": self.pair_key(user_a, user_b),
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    @storage_errors
    async def get_by_id(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = to_object_id(conversation_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}))

    @storage_errors
    async def list_for_user(self, user_id: str) -> List[ConversationDocument]:
        cursor = self.collection.find({"participants": user_id})
        items = await cursor.to_list(length=None)
        return [normalize(it) for it in items]
