from typing import List

from fastapi import APIRouter, Depends

from messenger.schemas.conversation import ConversationView
from messenger.services.chat_service import ChatService
from messenger.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("", response_model=List[ConversationView])
async def list_conversations(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    # messages newest first, with per-user watermarks and unread count
    return await service.list_conversations_for(current_user["_id"])
