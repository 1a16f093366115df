"""
SessionKeeper Sessions - Redis backend for distributed session storage.

Production-grade Redis integration with:
- Owned connection pool with configurable size (via from_url)
- SET with EX for store-enforced expiry (reset on every save)
- Connection errors mapped to SessionStoreUnavailableFault
- Health checks and graceful shutdown
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..faults import SessionStoreUnavailableFault
from ..store import BaseStore

logger = logging.getLogger("sessionkeeper.sessions.redis")


class RedisStore(BaseStore):
    """
    Redis-backed session store using redis-py asyncio.

    Each command checks a connection out of the pool and returns it on
    every exit path, so concurrent requests never share a connection.

    Args:
        url: Redis connection URL (ignored when ``client`` is given)
        client: Pre-built ``redis.asyncio.Redis`` client; the store then
            does not own it and will not close it on shutdown
        max_connections: Pool size
        socket_timeout: Socket read/write timeout in seconds
        connect_timeout: Connect timeout in seconds
        **kwargs: BaseStore options (ttl, key_prefix, serializer, timeout)

    Example:
        >>> store = RedisStore("redis://localhost:6379/0", ttl=1800)
        >>> await store.save(sid, {"counter": 1})
        >>> await store.shutdown()
    """

    store_name = "redis"

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        client: Optional[Any] = None,
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        connect_timeout: float = 5.0,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self._url = url

        if client is not None:
            self._redis = client
            self._owns_client = False
        else:
            # Client owns its pool and releases it on aclose()
            self._redis = aioredis.from_url(
                url,
                max_connections=max_connections,
                socket_timeout=socket_timeout,
                socket_connect_timeout=connect_timeout,
                decode_responses=False,  # We handle serialization
            )
            self._owns_client = True

    @property
    def client(self) -> Any:
        return self._redis

    async def _call(self, operation: str, key: str, *args: Any, **kwargs: Any) -> Any:
        if self._redis is None:
            raise SessionStoreUnavailableFault(self.store_name, cause="store is shut down")
        try:
            return await getattr(self._redis, operation)(key, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis {operation.upper()} error: {e}")
            raise SessionStoreUnavailableFault(self.store_name, cause=str(e)) from e

    async def _read(self, key: str) -> bytes | None:
        return await self._call("get", key)

    async def _write(self, key: str, data: bytes, ttl: int | None) -> None:
        if ttl is not None:
            await self._call("set", key, data, ex=ttl)
        else:
            await self._call("set", key, data)

    async def _remove(self, key: str) -> None:
        await self._call("delete", key)

    async def _contains(self, key: str) -> bool:
        return bool(await self._call("exists", key))

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        if self._redis is None:
            return False
        try:
            return bool(await self._bounded("ping", self._redis.ping()))
        except (RedisError, SessionStoreUnavailableFault) as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def shutdown(self) -> None:
        """Close the client and release every pooled connection."""
        if self._redis is None:
            return
        if self._owns_client:
            await self._redis.aclose()
            logger.info(f"Redis session store closed: {self._url}")
        self._redis = None
