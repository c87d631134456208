import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

import redis.asyncio as redis

from support_chat.core.config import settings


logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[None]]


class _LocalSub:

    def __init__(self, bus: "LocalBus", channel: str, on_message: OnMessage) -> None:
        self._bus = bus
        self.channel = channel
        self._on_message = on_message
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._running = True

    def offer(self, message: str) -> None:
        if self._running:
            self._queue.put_nowait(message)

    async def run(self) -> None:
        while self._running:
            message = await self._queue.get()
            if not self._running:
                return
            await self._on_message(message)

    async def cancel(self) -> None:
        self._running = False
        self._bus._detach(self)


class LocalBus:
    """In-process fan-out used when no Redis is configured."""

    enabled = False

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[_LocalSub]] = {}

    async def publish(self, channel: str, message: str) -> None:
        for sub in list(self._subscribers.get(channel, [])):
            sub.offer(message)

    async def subscribe(self, channel: str, on_message: OnMessage) -> _LocalSub:
        sub = _LocalSub(self, channel, on_message)
        self._subscribers.setdefault(channel, []).append(sub)
        return sub

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def _detach(self, sub: _LocalSub) -> None:
        subs = self._subscribers.get(sub.channel)
        if not subs:
            return
        try:
            subs.remove(sub)
        except ValueError:
            return
        if not subs:
            self._subscribers.pop(sub.channel, None)

    async def close(self) -> None:
        self._subscribers.clear()


class _RedisSub:

    def __init__(self, pubsub, channel: str, on_message: OnMessage) -> None:
        self._pubsub = pubsub
        self.channel = channel
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if msg and msg.get("type") == "message":
                    data = msg.get("data")
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    await self._on_message(data)
            except redis.RedisError:
                logger.warning("Redis subscription read failed on %s", self.channel, exc_info=True)
                await asyncio.sleep(0.5)

    async def cancel(self) -> None:
        if not self._running:
            return
        self._running = False
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except redis.RedisError:
            logger.warning("Redis unsubscribe failed on %s", self.channel, exc_info=True)


class RedisBus:
    """Cross-process fan-out over Redis pub/sub."""

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: OnMessage) -> _RedisSub:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        return _RedisSub(pubsub, channel, on_message)

    async def close(self) -> None:
        await self._redis.aclose()


Bus = Union[LocalBus, RedisBus]

_bus: Optional[Bus] = None


async def get_bus() -> Bus:
    global _bus
    if _bus is not None:
        return _bus
    if settings.REDIS_URL:
        _bus = RedisBus(settings.REDIS_URL)
    else:
        _bus = LocalBus()
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None
