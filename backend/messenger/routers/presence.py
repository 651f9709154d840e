from fastapi import APIRouter, Depends

from messenger.services.presence import PresenceRegistry
from messenger.utils.dependencies import get_presence


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{user_id}")
async def presence(user_id: str, registry: PresenceRegistry = Depends(get_presence)):
    """Online status as seen by this process's socket connections."""
    return {"user_id": user_id, "online": registry.is_online(user_id)}
