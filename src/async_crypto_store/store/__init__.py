"""Crypto store subpackage.

Public surface
--------------
- AsyncCryptoStore       — the crypto store facade
- Transaction            — grouping of asynchronous store operations
- TransactionClosedError — operation registered on a settled transaction
- KeyScheme              — storage-key encoding
- EntityCodec            — JSON encoding of stored values
- MalformedEntryError    — a stored value could not be decoded
"""
from __future__ import annotations

from async_crypto_store.store.codec import EntityCodec, MalformedEntryError
from async_crypto_store.store.crypto_store import (
    MODE_READONLY,
    MODE_READWRITE,
    AsyncCryptoStore,
)
from async_crypto_store.store.keys import KeyScheme
from async_crypto_store.store.transaction import Transaction, TransactionClosedError

__all__ = [
    "AsyncCryptoStore",
    "EntityCodec",
    "KeyScheme",
    "MODE_READONLY",
    "MODE_READWRITE",
    "MalformedEntryError",
    "Transaction",
    "TransactionClosedError",
]
