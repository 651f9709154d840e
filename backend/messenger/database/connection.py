import functools
import logging
from typing import Any, Awaitable, Callable, Tuple, TypeVar

from fastapi.requests import HTTPConnection
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure

from messenger.config import Settings
from messenger.errors import StorageUnavailable


logger = logging.getLogger(__name__)

T = TypeVar("T")


def connect_to_mongo(settings: Settings) -> Tuple[AsyncIOMotorClient, AsyncIOMotorDatabase]:
    client = AsyncIOMotorClient(settings.mongodb_url)
    logger.info("Connecting to MongoDB database %s", settings.mongodb_db_name)
    return client, client[settings.mongodb_db_name]


def close_mongo_connection(client: AsyncIOMotorClient) -> None:
    client.close()
    logger.info("Closed MongoDB connection")


def mongo_db_dependency(connection: HTTPConnection) -> AsyncIOMotorDatabase:
    return connection.app.state.database


def storage_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Surface lost connectivity as StorageUnavailable instead of a driver error."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        # ServerSelectionTimeoutError and AutoReconnect both derive from ConnectionFailure
        try:
            return await func(*args, **kwargs)
        except ConnectionFailure as exc:
            raise StorageUnavailable(str(exc)) from exc

    return wrapper
