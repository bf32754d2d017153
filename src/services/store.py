"""Keyed state store with Redis primary and in-memory fallback.

Conversation state and bearer tokens are keyed by sender identity.  In a
single process they can live in memory; a multi-worker deployment points
``REDIS_URL`` at a shared Redis so every worker sees the same state.  If
Redis is unreachable, operations degrade to the process-local backend.

Read-modify-write of one sender's state is serialised with
:meth:`KeyValueStore.lock`, so two messages from the same sender never
interleave their updates.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import OrderedDict
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog
from pydantic import ValidationError

from src.models.conversation import ConversationState

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class KeyValueBackend(Protocol):
    """Async key/value backend interface."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisStoreBackend:
    """Redis-backed store using ``redis.asyncio`` with connection pooling."""

    __slots__ = ("_pool", "_redis")

    def __init__(self, url: str, *, max_connections: int = 20) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    def lock(self, key: str, *, timeout: float) -> Any:
        """Return a distributed lock usable with ``async with``."""
        return self._redis.lock(f"lock:{key}", timeout=timeout, blocking_timeout=timeout)

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _Entry:
    __slots__ = ("expires_at", "value")

    def __init__(self, value: bytes, ttl_seconds: int | None) -> None:
        self.value = value
        self.expires_at: float | None = (time.monotonic() + ttl_seconds) if ttl_seconds is not None else None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() > self.expires_at


class InMemoryStoreBackend:
    """OrderedDict-based store with lazy TTL expiry and LRU eviction."""

    __slots__ = ("_data", "_lock", "_max_size")

    def __init__(self, *, max_size: int = 100_000) -> None:
        self._max_size = max_size
        self._data: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.expired:
                del self._data[key]
                return None
            self._data.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            if key in self._data:
                del self._data[key]
            while len(self._data) >= self._max_size:
                self._data.popitem(last=False)
            self._data[key] = _Entry(value, ttl_seconds)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    @property
    def size(self) -> int:
        """Number of (possibly expired) entries."""
        return len(self._data)


# ---------------------------------------------------------------------------
# Per-key locks
# ---------------------------------------------------------------------------


class _KeyedLocks:
    """One :class:`asyncio.Lock` per key, dropped once nobody holds or awaits it."""

    __slots__ = ("_locks", "_users")

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


# ---------------------------------------------------------------------------
# KeyValueStore  --  public API
# ---------------------------------------------------------------------------


class KeyValueStore:
    """Namespaced JSON store with automatic Redis -> in-memory fallback.

    Parameters
    ----------
    redis_url:
        Redis connection string.  Pass *None* (or an empty string) to keep
        everything in process memory.
    namespace:
        Prefix prepended to every key (e.g. ``"reliefline:state:"``).
    lock_timeout:
        Upper bound, in seconds, for holding the distributed per-key lock.
    """

    __slots__ = (
        "_fallback",
        "_local_locks",
        "_lock_timeout",
        "_namespace",
        "_redis",
        "_redis_available",
        "_redis_checked",
    )

    def __init__(
        self,
        *,
        redis_url: str | None = None,
        namespace: str = "",
        inmemory_max_size: int = 100_000,
        lock_timeout: float = 60.0,
    ) -> None:
        self._namespace = namespace
        self._fallback = InMemoryStoreBackend(max_size=inmemory_max_size)
        self._local_locks = _KeyedLocks()
        self._lock_timeout = lock_timeout
        self._redis: RedisStoreBackend | None = None
        self._redis_available: bool = False
        self._redis_checked: bool = False

        if redis_url:
            try:
                self._redis = RedisStoreBackend(url=redis_url)
            except Exception:
                logger.warning("store.redis_init_failed", redis_url=redis_url)
                self._redis = None

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def _ensure_checked(self) -> None:
        """Probe Redis once, lazily, on first use."""
        if self._redis is not None and not self._redis_checked:
            self._redis_checked = True
            self._redis_available = await self._redis.ping()
            if self._redis_available:
                logger.info("store.redis_connected", namespace=self._namespace)
            else:
                logger.warning("store.redis_unavailable_using_inmemory", namespace=self._namespace)

    async def _op(self, method: str, key: str, *args: Any, **kwargs: Any) -> Any:
        """Try Redis; on failure, flip to in-memory and retry transparently."""
        await self._ensure_checked()
        if self._redis_available and self._redis is not None:
            try:
                return await getattr(self._redis, method)(key, *args, **kwargs)
            except Exception:
                logger.warning("store.redis_op_failed", method=method, key=key)
                self._redis_available = False

        return await getattr(self._fallback, method)(key, *args, **kwargs)

    async def get(self, key: str, default: Any = None) -> Any:
        raw: bytes | None = await self._op("get", self._make_key(key))
        if raw is None:
            return default
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("store.undecodable_value", key=key)
            return default

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self._op("set", self._make_key(key), orjson.dumps(value), ttl_seconds=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._op("delete", self._make_key(key))

    @contextlib.asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """Hold exclusive access to *key* for a read-modify-write cycle."""
        async with self._local_locks.hold(key):
            await self._ensure_checked()
            if self._redis_available and self._redis is not None:
                async with self._redis.lock(self._make_key(key), timeout=self._lock_timeout):
                    yield
            else:
                yield

    async def close(self) -> None:
        """Cleanly shut down the Redis connection pool (if any)."""
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()


# ---------------------------------------------------------------------------
# Typed stores
# ---------------------------------------------------------------------------


class ConversationStore:
    """Per-sender :class:`ConversationState`, one entry per identity."""

    __slots__ = ("_store", "_ttl")

    def __init__(self, store: KeyValueStore, *, ttl_seconds: int | None = None) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def get(self, sender: str) -> ConversationState | None:
        raw = await self._store.get(sender)
        if raw is None:
            return None
        try:
            return ConversationState.model_validate(raw)
        except ValidationError:
            logger.warning("store.conversation_state_discarded", sender=sender)
            await self._store.delete(sender)
            return None

    async def save(self, sender: str, state: ConversationState) -> None:
        await self._store.set(sender, state.model_dump(mode="json"), ttl_seconds=self._ttl)

    async def delete(self, sender: str) -> None:
        await self._store.delete(sender)

    def lock(self, sender: str) -> contextlib.AbstractAsyncContextManager[None]:
        return self._store.lock(sender)


class SessionStore:
    """Bearer tokens keyed by sender identity."""

    __slots__ = ("_store", "_ttl")

    def __init__(self, store: KeyValueStore, *, ttl_seconds: int | None = None) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def get(self, sender: str) -> str | None:
        token = await self._store.get(sender)
        return token if isinstance(token, str) and token else None

    async def set(self, sender: str, token: str) -> None:
        await self._store.set(sender, token, ttl_seconds=self._ttl)

    async def delete(self, sender: str) -> None:
        await self._store.delete(sender)

    async def has(self, sender: str) -> bool:
        return await self.get(sender) is not None
