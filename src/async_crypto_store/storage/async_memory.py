"""Async in-memory key-value storage backend.

Stores values in a plain Python dict guarded by ``asyncio.Lock``.
All data is lost when the process exits.  This backend is primarily
useful for tests and local prototyping.

Classes
-------
- AsyncInMemoryBackend  — dict-backed ephemeral async storage
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from async_crypto_store.storage.async_base import AsyncKeyValueBackend


class AsyncInMemoryBackend(AsyncKeyValueBackend):
    """Ephemeral async in-process storage backend backed by a Python dict.

    An ``asyncio.Lock`` guards all access so that concurrent coroutines
    do not race on the internal dict.

    Parameters
    ----------
    initial_data:
        Optional pre-populated mapping of keys to raw values.
        A shallow copy is taken so the caller's dict is not mutated.
    """

    def __init__(self, initial_data: dict[str, str] | None = None) -> None:
        self._store: dict[str, str] = dict(initial_data or {})
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # AsyncKeyValueBackend interface
    # ------------------------------------------------------------------

    async def list_all_keys(self) -> Sequence[str]:
        """Return all stored keys in insertion order."""
        async with self._lock:
            return list(self._store)

    async def get_item(self, key: str) -> str | None:
        """Return the value for ``key``, or ``None`` if absent."""
        async with self._lock:
            return self._store.get(key)

    async def set_item(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, overwriting if present."""
        async with self._lock:
            self._store[key] = value

    async def remove_item(self, key: str) -> None:
        """Remove ``key`` if present."""
        async with self._lock:
            self._store.pop(key, None)

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    async def clear(self) -> None:
        """Remove all stored keys."""
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"AsyncInMemoryBackend(keys={len(self._store)})"


__all__ = ["AsyncInMemoryBackend"]
