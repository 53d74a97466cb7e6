#!/usr/bin/env python3
"""Example: Quickstart — async-crypto-store

Minimal working example: store an account and an Olm session inside a
transaction, read them back, and mark a group session for backup.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install async-crypto-store
"""
from __future__ import annotations

import asyncio

import async_crypto_store
from async_crypto_store import (
    MODE_READONLY,
    MODE_READWRITE,
    AsyncCryptoStore,
    AsyncInMemoryBackend,
    GroupSessionRecord,
)


async def main() -> None:
    print(f"async-crypto-store version: {async_crypto_store.__version__}")

    backend = AsyncInMemoryBackend()
    store = await AsyncCryptoStore(backend).startup()

    # Step 1: Write inside a transaction
    def write(txn: async_crypto_store.Transaction) -> None:
        store.store_account(txn, "pickled-account")
        store.store_end_to_end_session(
            "device-key", "session-1", {"session": "pickled-olm-session"}, txn
        )
        store.store_end_to_end_inbound_group_session(
            "sender-key", "group-1", {"room_id": "!room:example.org", "session": "x"}, txn
        )

    await store.do_txn(MODE_READWRITE, ["account", "sessions"], write)
    print(f"Keys written: {await backend.list_all_keys()}")

    # Step 2: Read back with callbacks
    found: dict[str, object] = {}

    def read(txn: async_crypto_store.Transaction) -> None:
        store.get_account(txn, lambda account: found.__setitem__("account", account))
        store.get_end_to_end_sessions(
            "device-key", txn, lambda sessions: found.__setitem__("sessions", sessions)
        )

    await store.do_txn(MODE_READONLY, ["account", "sessions"], read)
    print(f"Account: {found['account']}")
    print(f"Sessions for device-key: {list(found['sessions'])}")  # type: ignore[call-overload]

    # Step 3: Backup bookkeeping
    await store.mark_sessions_needing_backup(
        [GroupSessionRecord(sender_key="sender-key", session_id="group-1")]
    )
    print(f"Sessions needing backup: {await store.count_sessions_needing_backup()}")


if __name__ == "__main__":
    asyncio.run(main())
