"""TTL key-value backing store.

SessionStore, SessionExtraStore and UpdateDedupeGuard all talk to the same
small surface: JSON get, set with optional expiry and create-if-absent, and
delete.  Production uses Redis; local development and tests use the
in-process implementation.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .errors import BackingStoreUnavailable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Structural interface for the TTL key-value store."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool: ...

    async def delete(self, key: str) -> None: ...


class RedisKeyValueStore:
    """JSON values in Redis; every client error surfaces as BackingStoreUnavailable."""

    DEFAULT_SOCKET_TIMEOUT = 5.0

    def __init__(self, client: Any):
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = DEFAULT_SOCKET_TIMEOUT) -> "RedisKeyValueStore":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError) as e:
            raise BackingStoreUnavailable(f"GET {key} failed: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError):
            logger.warning("Value under %s is not valid JSON; treating as absent", key)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        payload = json.dumps(value, ensure_ascii=False)
        try:
            result = await self._client.set(
                key,
                payload,
                ex=ttl_seconds or None,
                nx=only_if_absent,
            )
        except (RedisError, OSError) as e:
            raise BackingStoreUnavailable(f"SET {key} failed: {e}") from e
        return bool(result)

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as e:
            raise BackingStoreUnavailable(f"DEL {key} failed: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()


class InMemoryKeyValueStore:
    """Process-local store with lazy expiry, driven by an injectable clock.

    Values are kept JSON-encoded so readers always get a fresh copy, the same
    as a round trip through Redis.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live_entry(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        if entry is None:
            return None
        return json.loads(entry[0])

    async def set(
        self,
        key: str,
        value: Any,
        *,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        if only_if_absent and self._live_entry(key) is not None:
            return False
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (json.dumps(value, ensure_ascii=False), expires_at)
        return True

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return [k for k in list(self._data) if self._live_entry(k) is not None]


def create_kv_store(redis_url: str = "") -> KeyValueStore:
    """Build the backing store: Redis when a URL is configured, otherwise in-process."""
    if redis_url:
        logger.info("Using Redis backing store")
        return RedisKeyValueStore.from_url(redis_url)
    logger.warning("No redis url configured; session history is kept in-process only")
    return InMemoryKeyValueStore()
