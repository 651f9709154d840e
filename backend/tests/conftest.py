import json
import uuid
from typing import Dict, List, Optional, Tuple

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from messenger.config import Settings
from messenger.main import create_app, ensure_indexes
from messenger.repositories.user_repository import UserRepository
from messenger.schemas.base import CamelModel
from messenger.schemas.events import frame
from messenger.utils.security import create_access_token


class PushChannel:
    """Stands in for the socket fan-out: records frames and delivers them on flush()."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, dict]] = []
        self.pending: List[Tuple[str, str]] = []
        self.sessions: Dict[str, object] = {}

    async def emit_to(self, user_id: str, event: str, payload: CamelModel) -> None:
        data = frame(event, payload)
        self.sent.append((user_id, event, data["data"]))
        self.pending.append((user_id, json.dumps(data)))

    async def broadcast(self, event: str, payload: CamelModel, exclude: Optional[str] = None) -> None:
        for user_id in self.sessions:
            if user_id != exclude:
                await self.emit_to(user_id, event, payload)

    def sent_to(self, user_id: str, event: str) -> List[dict]:
        return [data for uid, name, data in self.sent if uid == user_id and name == event]

    async def flush(self) -> None:
        while self.pending:
            user_id, raw = self.pending.pop(0)
            session = self.sessions.get(user_id)
            if session is not None:
                await session.handle_frame(raw)


@pytest.fixture
def settings():
    return Settings(jwt_secret_key="test-secret-key-with-enough-bytes-for-hs256", redis_url="", mongodb_db_name="messenger_test")


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()[f"messenger_{uuid.uuid4().hex}"]
    await ensure_indexes(database)
    return database


@pytest.fixture
async def users(db):
    repo = UserRepository(db)
    ids = {}
    for name in ("alice", "bob", "carol"):
        ids[name] = await repo.create_user(name, photo_url=f"https://img.example/{name}.png")
    return ids


@pytest.fixture
def push():
    return PushChannel()


@pytest.fixture
def app(settings, db, push):
    application = create_app(settings, database=db)
    application.state.events = push
    return application


@pytest.fixture
def auth(settings):
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, settings)}"}
    return _headers


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
