import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase

from messenger.config import Settings, get_settings
from messenger.database.connection import close_mongo_connection, connect_to_mongo
from messenger.errors import (
    ConversationNotFound,
    InvalidMessage,
    MessageNotFound,
    MessengerError,
    NotAParticipant,
    StorageUnavailable,
)
from messenger.repositories.conversation_repository import ConversationRepository
from messenger.repositories.message_repository import MessageRepository
from messenger.repositories.user_repository import UserRepository
from messenger.routers.conversations import router as conversations_router
from messenger.routers.messages import router as messages_router
from messenger.routers.presence import router as presence_router
from messenger.routers.realtime import router as realtime_router
from messenger.routers.users import router as users_router
from messenger.services.presence import PresenceRegistry
from messenger.utils.events import EventPublisher
from messenger.utils.realtime_bus import create_bus
from messenger.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ConversationNotFound: 404,
    MessageNotFound: 404,
    NotAParticipant: 403,
    InvalidMessage: 400,
    StorageUnavailable: 503,
}


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await UserRepository(db).ensure_indexes()
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()


@asynccontextmanager
async def lifespan(app: FastAPI):

    client = None
    if app.state.database is None:
        client, app.state.database = connect_to_mongo(app.state.settings)
    await ensure_indexes(app.state.database)
    try:
        yield
    finally:
        await app.state.bus.close()
        if client is not None:
            close_mongo_connection(client)


async def messenger_error_handler(request: Request, exc: MessengerError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(settings: Optional[Settings] = None, database: Optional[AsyncIOMotorDatabase] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Messenger", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    # process-wide collaborators, created once and injected through app.state
    app.state.presence = PresenceRegistry()
    app.state.manager = ConnectionManager()
    app.state.bus = create_bus(settings.redis_url)
    app.state.events = EventPublisher(app.state.manager, app.state.bus)

    app.add_exception_handler(MessengerError, messenger_error_handler)

    app.include_router(conversations_router)
    app.include_router(messages_router)
    app.include_router(users_router)
    app.include_router(presence_router)
    app.include_router(realtime_router)

    @app.get("/")
    async def root():
        return {"message": "Messenger is running", "online_users": len(app.state.presence.online_ids())}

    return app


app = create_app()
