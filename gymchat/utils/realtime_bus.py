import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from gymchat.core.config import get_settings


logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[None]]


class LocalBus:
    """In-process fan-out, used when no Redis is configured (single worker)."""

    enabled = True
    distributed = False

    def __init__(self) -> None:
        self._queues: Dict[str, List[asyncio.Queue]] = {}

    async def publish(self, channel: str, message: str) -> None:
        for queue in list(self._queues.get(channel, [])):
            queue.put_nowait(message)

    async def subscribe(self, channel: str, on_message: OnMessage):
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.setdefault(channel, []).append(queue)
        queues = self._queues

        class _Sub:
            _running = True

            async def run(self_inner):
                while self_inner._running:
                    data = await queue.get()
                    if data is None:
                        break
                    try:
                        await on_message(data)
                    except Exception:
                        logger.exception("Subscriber callback failed on %s", channel)

            async def cancel(self_inner):
                self_inner._running = False
                try:
                    queues.get(channel, []).remove(queue)
                except ValueError:
                    pass
                queue.put_nowait(None)

        return _Sub()

    async def close(self) -> None:
        self._queues.clear()


class RedisBus:

    enabled = True
    distributed = True

    def __init__(self, url: str) -> None:
        import redis.asyncio as redis

        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, channel: str, on_message: OnMessage):
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
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        logger.warning("Redis subscription on %s failed, retrying", channel, exc_info=True)
                        await asyncio.sleep(0.5)

            async def cancel(self_inner):
                self_inner._running = False
                try:
                    await pubsub.unsubscribe(channel)
                    await pubsub.aclose()
                except Exception:
                    logger.debug("Ignoring error while closing pubsub for %s", channel, exc_info=True)

        return _Sub()

    async def close(self) -> None:
        await self._redis.aclose()


_bus = None


async def get_bus():
    global _bus
    if _bus is not None:
        return _bus
    url: Optional[str] = get_settings().redis_url
    _bus = RedisBus(url) if url else LocalBus()
    logger.info("Realtime bus: %s", type(_bus).__name__)
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None
