from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from messenger.config import Settings
from messenger.database.connection import mongo_db_dependency
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.message_repository import MessageRepository
from messenger.repositories.user_repository import UserRepository
from messenger.services.chat_service import ChatService
from messenger.services.conversation_resolver import ConversationResolver
from messenger.services.presence import PresenceRegistry
from messenger.services.read_receipts import ReadReceiptRecorder
from messenger.utils.events import EventPublisher
from messenger.utils.security import decode_access_token


bearer_scheme = HTTPBearer(auto_error=False)


def get_app_settings(connection: HTTPConnection) -> Settings:
    return connection.app.state.settings


def get_presence(connection: HTTPConnection) -> PresenceRegistry:
    return connection.app.state.presence


def get_events(connection: HTTPConnection) -> EventPublisher:
    return connection.app.state.events


async def user_from_token(token: Optional[str], db: AsyncIOMotorDatabase, settings: Settings) -> Optional[dict]:
    if not token:
        return None
    try:
        payload = decode_access_token(token, settings)
    except jwt.PyJWTError:
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return await UserRepository(db).get_user_by_id(user_id)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    token = credentials.credentials if credentials else None
    user = await user_from_token(token, db, settings)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_chat_service(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    presence: PresenceRegistry = Depends(get_presence),
    events: EventPublisher = Depends(get_events),
    settings: Settings = Depends(get_app_settings),
) -> ChatService:
    convo_repo = ConversationRepository(db)
    return ChatService(
        MessageRepository(db),
        convo_repo,
        UserRepository(db),
        ConversationResolver(convo_repo, max_attempts=settings.resolver_max_attempts),
        presence,
        events,
        max_message_length=settings.max_message_length,
    )


def get_read_receipts(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    events: EventPublisher = Depends(get_events),
) -> ReadReceiptRecorder:
    return ReadReceiptRecorder(MessageRepository(db), ConversationRepository(db), events)
