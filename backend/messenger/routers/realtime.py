import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from motor.motor_asyncio import AsyncIOMotorDatabase

from messenger.database.connection import mongo_db_dependency
from messenger.schemas.events import ADD_ONLINE_USER, REMOVE_OFFLINE_USER, PresenceEvent
from messenger.utils.dependencies import user_from_token
from messenger.utils.events import BROADCAST_CHANNEL, user_channel


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)):
    # token comes as ?token=... since browsers cannot set headers on sockets
    state = websocket.app.state
    user = await user_from_token(websocket.query_params.get("token"), db, state.settings)
    if user is None:
        await websocket.close(code=4401)
        return
    user_id = user["_id"]

    await state.manager.connect(user_id, websocket)
    logger.info("Socket connected for user %s", user_id)

    subscriptions = []
    registered = False
    try:
        if state.bus.enabled:
            async def forward(message: str) -> None:
                await send_to_socket(websocket, user_id, message)

            async def forward_broadcast(message: str) -> None:
                data = json.loads(message)
                if data.pop("exclude", None) == user_id:
                    return
                await send_to_socket(websocket, user_id, json.dumps(data))

            for channel, handler in ((user_channel(user_id), forward), (BROADCAST_CHANNEL, forward_broadcast)):
                subscriber = await state.bus.subscribe(channel, handler)
                subscriptions.append((subscriber, asyncio.create_task(subscriber.run())))

        registered = True
        if state.presence.connect(user_id):
            await state.events.broadcast(ADD_ONLINE_USER, PresenceEvent(id=user_id), exclude=user_id)

        while True:
            # the server does all fan-out itself, client frames only keep the socket alive
            data = await websocket.receive_text()
            logger.debug("Ignoring frame from %s: %s", user_id, data[:200])
    except WebSocketDisconnect:
        logger.info("Socket disconnected for user %s", user_id)
    finally:
        state.manager.disconnect(user_id, websocket)
        for subscriber, task in subscriptions:
            await subscriber.cancel()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Subscription for user %s ended with an error", user_id)
        if registered and state.presence.disconnect(user_id):
            await state.events.broadcast(REMOVE_OFFLINE_USER, PresenceEvent(id=user_id), exclude=user_id)


async def send_to_socket(websocket: WebSocket, user_id: str, message: str) -> None:
    try:
        await websocket.send_text(message)
    except (RuntimeError, WebSocketDisconnect):
        logger.warning("Could not forward event to closed socket of user %s", user_id)
