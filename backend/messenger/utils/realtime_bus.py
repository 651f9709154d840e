import asyncio
import logging
from typing import Awaitable, Callable

import redis.asyncio as redis


logger = logging.getLogger(__name__)


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        class _Sub:
            async def run(self):
                await asyncio.Future()

            async def cancel(self):
                return

        return _Sub()

    async def close(self) -> None:
        return


class _RedisSubscription:

    def __init__(self, pubsub, channel: str, on_message: Callable[[str], Awaitable[None]]) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except redis.RedisError:
                logger.exception("Redis subscription on %s failed, retrying", self._channel)
                await asyncio.sleep(0.5)
                continue
            if msg and msg.get("type") == "message":
                data = msg.get("data")
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                await self._on_message(data)

    async def cancel(self) -> None:
        self._running = False
        try:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
        except redis.RedisError:
            logger.warning("Could not unsubscribe from %s", self._channel)


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        return _RedisSubscription(pubsub, channel, on_message)

    async def close(self) -> None:
        await self._redis.aclose()


def create_bus(url: str):
    if not url:
        return NoopBus()
    logger.info("Using Redis fan-out bus")
    return RedisBus(url)
