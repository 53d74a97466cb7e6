"""Abstract base class for async key-value storage backends.

A backend exposes a single flat namespace of string keys mapped to string
values.  Everything the crypto store persists is encoded onto this
namespace, so backends need nothing beyond whole-key lookup and a full key
listing.

Classes
-------
- AsyncKeyValueBackend  — abstract base for all async backends
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence


class AsyncKeyValueBackend(ABC):
    """Protocol for async reading and writing of raw string values.

    All methods are coroutines (``async def``).  ``set_item`` and
    ``remove_item`` must be idempotent.
    """

    @abstractmethod
    async def list_all_keys(self) -> Sequence[str]:
        """Return every key currently stored in this backend.

        Returns
        -------
        Sequence[str]
            All keys, including keys written by other users of the same
            backend.  Order is implementation-defined.
        """

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        """Return the value stored under ``key``.

        Parameters
        ----------
        key:
            The key to look up.

        Returns
        -------
        str | None
            The stored value, or ``None`` if ``key`` is absent.
        """

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, overwriting any existing value.

        Parameters
        ----------
        key:
            The key to write.
        value:
            UTF-8 string to persist (typically JSON).
        """

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Remove ``key``.  Removing an absent key is a no-op.

        Parameters
        ----------
        key:
            The key to remove.
        """

    async def close(self) -> None:
        """Release any connections held by the backend.

        The default does nothing.  Backends holding a client override it.
        """


__all__ = ["AsyncKeyValueBackend"]
