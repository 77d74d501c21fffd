"""
Shared Store - The key-value medium every participant talks through.

Paths are slash separated ("session/abc/actions/0000000003"). A key's
children are the keys one level below it; push() appends a child with a
monotonic, lexically ordered name.

Two implementations:
- InMemoryStore: single process, JSON round-trip on every write so callers
  never share mutable values
- RedisStore: redis.asyncio, values as JSON strings, change notifications
  over pub/sub
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable
import asyncio
import inspect
import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# (key, value) - value is None after a delete
StoreCallback = Callable[[str, Any], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]


def parent_of(key: str) -> str:
    return key.rsplit("/", 1)[0] if "/" in key else ""


def child_name(index: int) -> str:
    return f"{index:010d}"


async def _deliver(callback: StoreCallback, key: str, value: Any) -> None:
    try:
        result = callback(key, value)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Store subscriber failed for %s", key)


class KeyValueStore(ABC):
    """Abstract async key-value store with change subscriptions."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def push(self, prefix: str, value: Any) -> str:
        """Append a child under prefix; returns the new child's full key."""

    @abstractmethod
    async def children(self, prefix: str) -> list[tuple[str, Any]]:
        """Direct children of prefix as (key, value), oldest first."""

    @abstractmethod
    def subscribe(self, key: str, callback: StoreCallback) -> Unsubscribe:
        ...

    @abstractmethod
    def subscribe_children(self, prefix: str, callback: StoreCallback) -> Unsubscribe:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryStore(KeyValueStore):
    """
    Process-local store.

    Notifications are delivered in write order before the write returns.
    """

    def __init__(self):
        self._data: dict[str, str] = {}
        self._counter = 0
        self._key_listeners: dict[str, list[StoreCallback]] = {}
        self._child_listeners: dict[str, list[StoreCallback]] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)
        await self._notify(key)

    async def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            await self._notify(key)

    async def push(self, prefix: str, value: Any) -> str:
        self._counter += 1
        key = f"{prefix}/{child_name(self._counter)}"
        await self.set(key, value)
        return key

    async def children(self, prefix: str) -> list[tuple[str, Any]]:
        return [
            (key, json.loads(raw))
            for key, raw in list(self._data.items())
            if parent_of(key) == prefix
        ]

    def subscribe(self, key: str, callback: StoreCallback) -> Unsubscribe:
        return self._listen(self._key_listeners, key, callback)

    def subscribe_children(self, prefix: str, callback: StoreCallback) -> Unsubscribe:
        return self._listen(self._child_listeners, prefix, callback)

    def _listen(self, registry, key, callback) -> Unsubscribe:
        registry.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            listeners = registry.get(key, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    async def _notify(self, key: str) -> None:
        value = await self.get(key)
        for callback in list(self._key_listeners.get(key, ())):
            await _deliver(callback, key, value)
        for callback in list(self._child_listeners.get(parent_of(key), ())):
            await _deliver(callback, key, value)


class RedisStore(KeyValueStore):
    """
    Redis-backed store.

    Each value lives under "{namespace}:{key}". Every parent keeps a
    sorted-set index of its children so children() preserves write order.
    Writes publish the key on a per-key and a per-parent channel.
    """

    def __init__(self, redis: Redis, namespace: str = "helldraft", poll_timeout: float = 1.0):
        self.redis = redis
        self.namespace = namespace
        self.poll_timeout = poll_timeout
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_url(cls, url: str, namespace: str = "helldraft") -> RedisStore:
        return cls(
            Redis.from_url(url, decode_responses=True, health_check_interval=30),
            namespace=namespace,
        )

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _index(self, prefix: str) -> str:
        return f"{self.namespace}:children:{prefix}"

    def _key_channel(self, key: str) -> str:
        return f"{self.namespace}:changed:{key}"

    def _child_channel(self, prefix: str) -> str:
        return f"{self.namespace}:changed-children:{prefix}"

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        order = await self.redis.incr(f"{self.namespace}:seq")
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(key), json.dumps(value))
            pipe.zadd(self._index(parent_of(key)), {key: order}, nx=True)
            await pipe.execute()
        await self._publish(key)

    async def delete(self, key: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(key))
            pipe.zrem(self._index(parent_of(key)), key)
            await pipe.execute()
        await self._publish(key)

    async def push(self, prefix: str, value: Any) -> str:
        index = await self.redis.incr(f"{self.namespace}:push:{prefix}")
        key = f"{prefix}/{child_name(index)}"
        await self.set(key, value)
        return key

    async def children(self, prefix: str) -> list[tuple[str, Any]]:
        keys = await self.redis.zrange(self._index(prefix), 0, -1)
        if not keys:
            return []
        raws = await self.redis.mget([self._key(k) for k in keys])
        return [(k, json.loads(raw)) for k, raw in zip(keys, raws) if raw is not None]

    async def _publish(self, key: str) -> None:
        await self.redis.publish(self._key_channel(key), key)
        await self.redis.publish(self._child_channel(parent_of(key)), key)

    def subscribe(self, key: str, callback: StoreCallback) -> Unsubscribe:
        return self._listen(self._key_channel(key), callback)

    def subscribe_children(self, prefix: str, callback: StoreCallback) -> Unsubscribe:
        return self._listen(self._child_channel(prefix), callback)

    def _listen(self, channel: str, callback: StoreCallback) -> Unsubscribe:
        task = asyncio.get_running_loop().create_task(self._pump(channel, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task.cancel

    async def _pump(self, channel: str, callback: StoreCallback) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            while True:
                msg = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=self.poll_timeout
                )
                if msg and msg["type"] == "message":
                    key = msg["data"]
                    await _deliver(callback, key, await self.get(key))
        finally:
            logger.debug("Unsubscribing from %s", channel)
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            logger.warning("Redis ping failed: %s", e)
            return False

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.redis.aclose()
