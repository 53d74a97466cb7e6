"""Storage backend subpackage.

All backends implement the ``AsyncKeyValueBackend`` ABC.  Import only what
you need; optional backends guard their third-party imports so that the
package remains installable without those extras.

Public surface
--------------
- AsyncKeyValueBackend — abstract base class for async backends
- AsyncInMemoryBackend — async dict-based backend with asyncio.Lock
- AsyncSQLiteBackend   — async aiosqlite backend (requires aiosqlite)
- AsyncRedisBackend    — async redis.asyncio backend (requires redis>=5)
"""
from __future__ import annotations

from async_crypto_store.storage.async_base import AsyncKeyValueBackend
from async_crypto_store.storage.async_memory import AsyncInMemoryBackend

__all__ = [
    "AsyncKeyValueBackend",
    "AsyncInMemoryBackend",
]

# AsyncSQLiteBackend — guarded by the aiosqlite dependency
try:
    from async_crypto_store.storage.async_sqlite import AsyncSQLiteBackend

    __all__ = [*__all__, "AsyncSQLiteBackend"]
except ImportError:
    pass

# AsyncRedisBackend — guarded by the redis[asyncio] dependency
try:
    from async_crypto_store.storage.async_redis import AsyncRedisBackend

    __all__ = [*__all__, "AsyncRedisBackend"]
except ImportError:
    pass
