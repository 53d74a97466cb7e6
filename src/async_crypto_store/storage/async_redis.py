"""Async Redis key-value storage backend — requires redis[asyncio] (guarded import).

Classes
-------
- AsyncRedisBackend  — redis.asyncio-backed async key-value storage
"""

from __future__ import annotations

from typing import Sequence

from async_crypto_store.storage.async_base import AsyncKeyValueBackend

_REDIS_IMPORT_ERROR = (
    "AsyncRedisBackend requires the 'redis' package with asyncio support. "
    "Install it with: pip install redis  or  "
    "pip install 'async-crypto-store[redis]'"
)


class AsyncRedisBackend(AsyncKeyValueBackend):
    """Persists key-value pairs in a Redis instance using ``redis.asyncio``.

    Each key is stored as a Redis string under ``<key_prefix><key>``; the
    prefix is stripped again when keys are listed, so several logical
    namespaces can share one Redis database.

    Parameters
    ----------
    host:
        Redis server hostname.  Defaults to ``"localhost"``.
    port:
        Redis server port.  Defaults to ``6379``.
    db:
        Redis logical database index.  Defaults to ``0``.
    password:
        Optional authentication password.
    key_prefix:
        String prepended to all keys.  Defaults to ``"kv:"``.
    url:
        If supplied, overrides host/port/db/password and is used as a
        Redis connection URL (e.g. ``"redis://localhost:6379/0"``).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        key_prefix: str = "kv:",
        url: str | None = None,
    ) -> None:
        try:
            import redis.asyncio as redis_asyncio
        except ImportError as exc:
            raise ImportError(_REDIS_IMPORT_ERROR) from exc

        if url is not None:
            self._client = redis_asyncio.Redis.from_url(url, decode_responses=True)
        else:
            self._client = redis_asyncio.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,
            )
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        """Return the full Redis key for ``key``."""
        return f"{self._key_prefix}{key}"

    # ------------------------------------------------------------------
    # AsyncKeyValueBackend interface
    # ------------------------------------------------------------------

    async def list_all_keys(self) -> Sequence[str]:
        """Return all keys stored under the configured prefix.

        Uses Redis SCAN to avoid blocking the server.
        """
        prefix_len = len(self._key_prefix)
        found: list[str] = []
        cursor: int = 0
        while True:
            cursor, keys = await self._client.scan(
                cursor=cursor, match=f"{self._key_prefix}*", count=100
            )
            for key in keys:
                found.append(str(key)[prefix_len:])
            if cursor == 0:
                break
        return found

    async def get_item(self, key: str) -> str | None:
        """Return the value for ``key``, or ``None`` if absent."""
        value: str | None = await self._client.get(self._key(key))
        if value is None:
            return None
        return str(value)

    async def set_item(self, key: str, value: str) -> None:
        """Write ``value`` to Redis under the prefixed key."""
        await self._client.set(self._key(key), value)

    async def remove_item(self, key: str) -> None:
        """Delete the prefixed key."""
        await self._client.delete(self._key(key))

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"AsyncRedisBackend(key_prefix={self._key_prefix!r})"


__all__ = ["AsyncRedisBackend"]
