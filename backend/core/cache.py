"""Read-through cache for list queries.

Entries are keyed by a deterministic serialization of (filter, pagination) and
are invalidated wholesale: any mutation clears the whole namespace, because a
single stock or status change can affect pages under many different keys.

Each namespace also keeps a generation counter outside the cleared prefix.
`invalidate_all` bumps it before clearing, and `get_or_compute` stores pages
under the generation it read before computing, so a page computed before a
mutation can never be served after that mutation's invalidation.

Backends raise on failure; `ReadThroughCache` is the layer that degrades a
failing backend to "no cache" so the read path never fails because of it.
"""

import json
import math
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def incr(self, key: str) -> int: ...

    async def clear(self, prefix: str) -> int: ...

    async def close(self) -> None: ...


class MemoryCacheBackend:
    """In-process backend. Expired entries are dropped on read and swept on every write."""

    def __init__(self):
        self._store: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            self._store.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        now = time.monotonic()
        self._purge_expired(now)
        self._store[key] = (now + ttl, value)

    async def incr(self, key: str) -> int:
        _, raw = self._store.get(key, (math.inf, "0"))
        value = int(raw) + 1
        self._store[key] = (math.inf, str(value))
        return value

    async def clear(self, prefix: str) -> int:
        doomed = [k for k in self._store if k.startswith(prefix)]
        for k in doomed:
            del self._store[k]
        return len(doomed)

    async def close(self) -> None:
        self._store.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires_at, _) in self._store.items() if expires_at <= now]
        for k in expired:
            del self._store[k]


class RedisCacheBackend:
    def __init__(self, url: str, socket_timeout: float = 2.0):
        self._redis = aioredis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )

    async def get(self, key: str) -> Optional[str]:
        return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        await self._redis.setex(key, ttl, value)

    async def incr(self, key: str) -> int:
        return await self._redis.incr(key)

    async def clear(self, prefix: str) -> int:
        count = 0
        cursor = 0
        while True:
            cursor, keys = await self._redis.scan(cursor=cursor, match=f"{prefix}*", count=1000)
            if keys:
                await self._redis.delete(*keys)
                count += len(keys)
            if cursor == 0:
                break
        return count

    async def close(self) -> None:
        await self._redis.aclose()


def make_backend(redis_url: str) -> CacheBackend:
    if redis_url:
        return RedisCacheBackend(redis_url)
    return MemoryCacheBackend()


class ReadThroughCache:
    def __init__(self, backend: CacheBackend, namespace: str, ttl: int = 600):
        self.backend = backend
        self.namespace = namespace
        self.ttl = ttl

    @property
    def prefix(self) -> str:
        return f"{self.namespace}:"

    @property
    def generation_key(self) -> str:
        # Outside `prefix`, so clearing the namespace never resets it
        return f"{self.namespace}#generation"

    def key(self, kind: str, *parts: Any) -> str:
        """Deterministic key: same parameters in any order give the same key."""
        payload = json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)
        return f"{self.prefix}{kind}:{payload}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            logger.warning("Cache read failed, treating as miss", key=key, error=repr(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry", key=key)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await self.backend.set(key, json.dumps(value, default=str), self.ttl)
        except Exception as e:
            logger.warning("Cache write failed", key=key, error=repr(e))

    async def generation(self) -> Optional[int]:
        """Current namespace generation, or None when the backend is unreachable."""
        try:
            raw = await self.backend.get(self.generation_key)
            return int(raw or 0)
        except Exception as e:
            logger.warning("Cache generation read failed", namespace=self.namespace, error=repr(e))
            return None

    async def invalidate_all(self) -> None:
        try:
            generation = await self.backend.incr(self.generation_key)
        except Exception as e:
            logger.warning("Cache generation bump failed", namespace=self.namespace, error=repr(e))
            generation = None
        try:
            cleared = await self.backend.clear(self.prefix)
            logger.debug("Cache invalidated", namespace=self.namespace, generation=generation, cleared=cleared)
        except Exception as e:
            # Entries left behind expire with their TTL
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=repr(e))

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[Any]],
        load: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Serve `key` from the cache, or compute, store and return it.

        `compute` must return a JSON-serializable value. `load` turns the stored
        value into the returned one; an entry it rejects with ValueError
        (pydantic's ValidationError included) is treated as a miss.
        """
        load = load or (lambda value: value)
        generation = await self.generation()
        if generation is None:
            return load(await compute())

        versioned = f"{key}@{generation}"
        cached = await self.get(versioned)
        if cached is not None:
            try:
                return load(cached)
            except ValueError as e:
                logger.warning("Discarding malformed cache entry", key=versioned, error=str(e))

        value = await compute()
        await self.set(versioned, value)
        return load(value)

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            logger.warning("Cache backend close failed", error=repr(e))
