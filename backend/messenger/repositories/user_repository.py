import re
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from messenger.database.connection import storage_errors
from messenger.models.user import UserDocument
from messenger.utils.object_ids import normalize, to_object_id


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    @storage_errors
    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("username", ASCENDING)], unique=True)

    @storage_errors
    async def create_user(self, username: str, photo_url: Optional[str] = None) -> str:

        doc = {"username": username, "photo_url": photo_url}
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    @storage_errors
    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return normalize(await self._collection.find_one({"_id": oid}))

    @storage_errors
    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, UserDocument]:
        oids = [oid for oid in (to_object_id(uid) for uid in user_ids) if oid is not None]
        if not oids:
            return {}
        items = await self._collection.find({"_id": {"$in": oids}}).to_list(length=None)
        return {doc["_id"]: doc for doc in (normalize(it) for it in items)}

    @storage_errors
    async def search_by_username(self, prefix: str, exclude_id: Optional[str] = None, limit: int = 20) -> List[UserDocument]:
        query: Dict[str, Any] = {"username": {"$regex": f"^{re.escape(prefix)}", "$options": "i"}}
        if exclude_id:
            oid = to_object_id(exclude_id)
            if oid is not None:
                query["_id"] = {"$ne": oid}
        items = await self._collection.find(query).sort("username", ASCENDING).limit(limit).to_list(length=limit)
        return [normalize(it) for it in items]
