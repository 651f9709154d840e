from typing import List

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from messenger.database.connection import mongo_db_dependency
from messenger.repositories.user_repository import UserRepository
from messenger.schemas.user import OtherUser
from messenger.services.presence import PresenceRegistry
from messenger.utils.dependencies import get_current_user, get_presence


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{username}", response_model=List[OtherUser])
async def search_users(
    username: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    presence: PresenceRegistry = Depends(get_presence),
):
    users = await UserRepository(db).search_by_username(username, exclude_id=current_user["_id"])
    return [
        OtherUser(id=u["_id"], username=u["username"], photo_url=u.get("photo_url"), online=presence.is_online(u["_id"]))
        for u in users
    ]
