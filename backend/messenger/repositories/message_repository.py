from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from messenger.database.connection import storage_errors
from messenger.models.message import MessageDocument
from messenger.utils.object_ids import normalize, to_object_id


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    @storage_errors
    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", DESCENDING)])

    @storage_errors
    async def save_message(self, conversation_id: str, sender_id: str, text: str) -> MessageDocument:
        doc: Dict[str, Any] = {
            "conversation_id": to_object_id(conversation_id),
            "sender_id": sender_id,
            "text": text,
            "created_at": datetime.now(timezone.utc),
            "reader_ids": [],
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return normalize(doc, "conversation_id")

    @storage_errors
    async def get_by_id(self, message_id: str) -> Optional[MessageDocument]:
        oid = to_object_id(message_id)
        if oid is None:
            return None
        return normalize(await self.collection.find_one({"_id": oid}), "conversation_id")

    @storage_errors
    async def list_for_conversations(self, conversation_ids: List[str]) -> Dict[str, List[MessageDocument]]:
        """Messages grouped by conversation id, newest first within each group."""
        grouped: Dict[str, List[MessageDocument]] = {cid: [] for cid in conversation_ids}
        if not conversation_ids:
            return grouped
        query = {"conversation_id": {"$in": [to_object_id(cid) for cid in conversation_ids]}}
        sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
        items = await self.collection.find(query).sort(sort).to_list(length=None)
        for it in items:
            normalize(it, "conversation_id")
            grouped.setdefault(it["conversation_id"], []).append(it)
        return grouped

    @storage_errors
    async def add_reader(self, message_id: str, reader_id: str) -> bool:
        """Add reader_id to the message's reader set.

        Returns True only when the reader was not there before. The filter makes the
        update a no-op for a repeated call, so concurrent duplicates cannot both win.
        """
        oid = to_object_id(message_id)
        if oid is None:
            return False
        result = await self.collection.update_one(
            {"_id": oid, "reader_ids": {"$ne": reader_id}},
            {"$push": {"reader_ids": reader_id}},
        )
        return result.modified_count > 0
