import asyncio
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis

from gymchat.config import get_settings


logger = logging.getLogger(__name__)


def insert_channel(receiver_id: str) -> str:
    return f"messages:insert:{receiver_id}"


class LocalBus:
    """In-process fan-out used when no Redis is configured."""

    enabled = False

    def __init__(self) -> None:
        self._queues: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, channel: str, message: str) -> None:
        for queue in list(self._queues.get(channel, ())):
            queue.put_nowait(message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[channel].append(queue)
        bus = self

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    message = await queue.get()
                    if message is None:
                        break
                    try:
                        await on_message(message)
                    except Exception:
                        logger.exception("Realtime handler failed on %s", channel)

            async def cancel(self_inner):
                self_inner._running = False
                bus._discard(channel, queue)
                queue.put_nowait(None)

        return _Sub()

    def _discard(self, channel: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(channel)
        if not queues:
            return
        try:
            queues.remove(queue)
        except ValueError:
            pass
        if not queues:
            del self._queues[channel]


class RedisBus:

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: Callable[[str], Awaitable[None]]):
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    try:
                        msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                        if msg and msg.get("type") == "message":
                            data = msg.get("data")
                            if isinstance(data, bytes):
                                data = data.decode("utf-8")
                            await on_message(data)
                    except redis.RedisError:
                        logger.exception("Redis subscription on %s failed, retrying", channel)
                        await asyncio.sleep(0.5)
                    except Exception:
                        logger.exception("Realtime handler failed on %s", channel)

            async def cancel(self_inner):
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()
                except redis.RedisError:
                    logger.warning("Could not unsubscribe from %s", channel)

        return _Sub()


_bus: Optional[object] = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    url = get_settings().redis_url
    _bus = RedisBus(url) if url else LocalBus()
    return _bus
