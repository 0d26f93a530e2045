"""Key-value persistence backends.

Tracking state lives in per-subscriber hashes (one field per wallet or
token) plus a handful of plain string keys with TTLs for daily history and
cached analytics. `RedisStore` is the durable backend; `InMemoryStore` is
injected when no Redis URL is configured and is also what the tests use.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the backing store cannot be read or written."""


class PersistenceStore(Protocol):
    """Hash-map plus string-key contract the tracking engines rely on."""

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def hget(self, key: str, field: str) -> str | None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def hdel(self, key: str, field: str) -> bool: ...

    async def keys(self, prefix: str) -> list[str]: ...

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def delete(self, key: str) -> bool: ...

    async def close(self) -> None: ...


def _decode(value: bytes | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode()
    return value


class RedisStore:
    """PersistenceStore backed by redis.asyncio.

    Example:
        ```python
        store = RedisStore(Redis.from_url("redis://localhost:6379"))
        await store.hset("trackedWallets:42", wallet, payload)
        ```
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    @classmethod
    def from_url(cls, url: str) -> RedisStore:
        """Create a store from a redis:// or rediss:// URL."""
        return cls(Redis.from_url(url))

    async def hset(self, key: str, field: str, value: str) -> None:
        try:
            await self._redis.hset(key, field, value)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"HSET {key} failed: {e}") from e

    async def hget(self, key: str, field: str) -> str | None:
        try:
            return _decode(await self._redis.hget(key, field))
        except (RedisError, OSError) as e:
            raise PersistenceError(f"HGET {key} failed: {e}") from e

    async def hgetall(self, key: str) -> dict[str, str]:
        try:
            raw = await self._redis.hgetall(key)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"HGETALL {key} failed: {e}") from e
        return {str(_decode(k)): str(_decode(v)) for k, v in raw.items()}

    async def hdel(self, key: str, field: str) -> bool:
        try:
            removed = await self._redis.hdel(key, field)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"HDEL {key} failed: {e}") from e
        return int(removed) > 0

    async def keys(self, prefix: str) -> list[str]:
        """List keys starting with `prefix` using SCAN (never KEYS)."""
        found: list[str] = []
        try:
            async for key in self._redis.scan_iter(match=f"{prefix}*"):
                found.append(str(_decode(key)))
        except (RedisError, OSError) as e:
            raise PersistenceError(f"SCAN {prefix}* failed: {e}") from e
        return found

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"SET {key} failed: {e}") from e

    async def get(self, key: str) -> str | None:
        try:
            return _decode(await self._redis.get(key))
        except (RedisError, OSError) as e:
            raise PersistenceError(f"GET {key} failed: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            deleted = await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise PersistenceError(f"DEL {key} failed: {e}") from e
        return int(deleted) > 0

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as e:
            logger.warning("Error closing Redis connection: %s", e)


class InMemoryStore:
    """Process-local PersistenceStore; state is lost on exit."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._hashes: dict[str, dict[str, str]] = {}
        self._values: dict[str, tuple[str, float | None]] = {}
        self._clock = clock

    async def hset(self, key: str, field: str, value: str) -> None:
        self._hashes.setdefault(key, {})[field] = value

    async def hget(self, key: str, field: str) -> str | None:
        return self._hashes.get(key, {}).get(field)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self._hashes.get(key, {}))

    async def hdel(self, key: str, field: str) -> bool:
        fields = self._hashes.get(key)
        if not fields or field not in fields:
            return False
        del fields[field]
        if not fields:
            del self._hashes[key]
        return True

    async def keys(self, prefix: str) -> list[str]:
        self._expire()
        names = set(self._hashes) | set(self._values)
        return sorted(k for k in names if k.startswith(prefix))

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        self._values[key] = (value, expires_at)

    async def get(self, key: str) -> str | None:
        self._expire()
        entry = self._values.get(key)
        return entry[0] if entry else None

    async def delete(self, key: str) -> bool:
        removed = self._values.pop(key, None) is not None
        removed = self._hashes.pop(key, None) is not None or removed
        return removed

    async def close(self) -> None:
        return None

    def _expire(self) -> None:
        now = self._clock()
        expired = [k for k, (_, exp) in self._values.items() if exp is not None and exp <= now]
        for key in expired:
            del self._values[key]
