"""async-crypto-store — End-to-end encryption storage over a flat async key-value store.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import async_crypto_store
>>> async_crypto_store.__version__
'0.1.0'
"""
from __future__ import annotations

# Configuration
from async_crypto_store.config import SESSION_BATCH_SIZE, CryptoStoreConfig
from async_crypto_store.clock import Clock, SystemClock

# Storage backends
from async_crypto_store.storage.async_base import AsyncKeyValueBackend
from async_crypto_store.storage.async_memory import AsyncInMemoryBackend

# Crypto store
from async_crypto_store.store.codec import EntityCodec, MalformedEntryError
from async_crypto_store.store.crypto_store import (
    MODE_READONLY,
    MODE_READWRITE,
    AsyncCryptoStore,
)
from async_crypto_store.store.keys import KeyScheme
from async_crypto_store.store.models import (
    ErrorDevice,
    ExtendedGroupSessionRecord,
    GroupSessionRecord,
    MigrationState,
    OutgoingRoomKeyRequest,
    RoomKeyRequestBody,
    RoomKeyRequestRecipient,
    RoomKeyRequestState,
    SessionProblem,
)
from async_crypto_store.store.transaction import Transaction, TransactionClosedError

__version__: str = "0.1.0"

__all__ = [
    "__version__",
    # Configuration
    "Clock",
    "CryptoStoreConfig",
    "SESSION_BATCH_SIZE",
    "SystemClock",
    # Storage
    "AsyncInMemoryBackend",
    "AsyncKeyValueBackend",
    # Crypto store
    "AsyncCryptoStore",
    "EntityCodec",
    "KeyScheme",
    "MODE_READONLY",
    "MODE_READWRITE",
    "MalformedEntryError",
    "Transaction",
    "TransactionClosedError",
    # Models
    "ErrorDevice",
    "ExtendedGroupSessionRecord",
    "GroupSessionRecord",
    "MigrationState",
    "OutgoingRoomKeyRequest",
    "RoomKeyRequestBody",
    "RoomKeyRequestRecipient",
    "RoomKeyRequestState",
    "SessionProblem",
]
