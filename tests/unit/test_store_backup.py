"""Unit tests for backup membership and shared-history bookkeeping."""
from __future__ import annotations

import logging
from typing import Any

import pytest

from async_crypto_store.storage.async_memory import AsyncInMemoryBackend
from async_crypto_store.store.crypto_store import MODE_READWRITE, AsyncCryptoStore
from async_crypto_store.store.models import GroupSessionRecord
from async_crypto_store.store.transaction import Transaction


def _session(session: str, room_id: str = "some-id") -> dict[str, Any]:
    return {"room_id": room_id, "session": session, "forwardingCurve25519KeyChain": []}


@pytest.fixture()
def backend() -> AsyncInMemoryBackend:
    return AsyncInMemoryBackend()


@pytest.fixture()
def store(backend: AsyncInMemoryBackend) -> AsyncCryptoStore:
    return AsyncCryptoStore(backend)


async def _store_sessions(store: AsyncCryptoStore, *sessions: tuple[str, str, Any]) -> None:
    def write(txn: Transaction) -> None:
        for sender_key, session_id, data in sessions:
            store.store_end_to_end_inbound_group_session(sender_key, session_id, data, txn)

    await store.do_txn(MODE_READWRITE, [], write)


# ---------------------------------------------------------------------------
# Sessions needing backup
# ---------------------------------------------------------------------------


class TestSessionsNeedingBackup:
    @pytest.mark.asyncio
    async def test_mark_and_unmark(self, store: AsyncCryptoStore) -> None:
        await _store_sessions(
            store,
            ("bob", "one", _session("some-session")),
            ("bob", "two", _session("another-session", "another-id")),
        )
        assert await store.count_sessions_needing_backup() == 0
        assert await store.get_sessions_needing_backup(0) == []

        one = GroupSessionRecord(sender_key="bob", session_id="one")
        await store.mark_sessions_needing_backup([one])

        assert await store.count_sessions_needing_backup() == 1
        assert await store.get_sessions_needing_backup(0) == [
            GroupSessionRecord(
                sender_key="bob", session_id="one", session_data=_session("some-session")
            )
        ]

        await store.unmark_sessions_needing_backup([one])

        assert await store.count_sessions_needing_backup() == 0
        assert await store.get_sessions_needing_backup(0) == []

    @pytest.mark.asyncio
    async def test_marking_twice_counts_once(self, store: AsyncCryptoStore) -> None:
        record = GroupSessionRecord(sender_key="a/b", session_id="c/d")
        await store.mark_sessions_needing_backup([record])
        await store.mark_sessions_needing_backup([record])
        assert await store.count_sessions_needing_backup() == 1

    @pytest.mark.asyncio
    async def test_membership_uses_escaped_composite_keys(
        self, store: AsyncCryptoStore, backend: AsyncInMemoryBackend
    ) -> None:
        await store.mark_sessions_needing_backup(
            [GroupSessionRecord(sender_key="a/b", session_id="c")]
        )
        assert await backend.get_item("crypto.sessionsneedingbackup") == '{"a%2Fb/c":true}'

    @pytest.mark.asyncio
    async def test_limit_stops_early(self, store: AsyncCryptoStore) -> None:
        await _store_sessions(
            store, ("s", "1", _session("x")), ("s", "2", _session("y")), ("s", "3", _session("z"))
        )
        await store.mark_sessions_needing_backup(
            [GroupSessionRecord(sender_key="s", session_id=i) for i in ("1", "2", "3")]
        )
        assert len(await store.get_sessions_needing_backup(2)) == 2
        assert len(await store.get_sessions_needing_backup(0)) == 3

    @pytest.mark.asyncio
    async def test_deleted_sessions_are_skipped_and_logged(
        self, store: AsyncCryptoStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        await _store_sessions(store, ("s", "kept", _session("x")))
        await store.mark_sessions_needing_backup(
            [
                GroupSessionRecord(sender_key="s", session_id="gone"),
                GroupSessionRecord(sender_key="s", session_id="kept"),
            ]
        )

        with caplog.at_level(logging.WARNING, logger="async_crypto_store.store.backup"):
            sessions = await store.get_sessions_needing_backup(0)

        assert [s.session_id for s in sessions] == ["kept"]
        assert "gone" in caplog.text
        # The membership set itself is left alone.
        assert await store.count_sessions_needing_backup() == 2

    @pytest.mark.asyncio
    async def test_malformed_membership_entries_are_skipped(
        self,
        store: AsyncCryptoStore,
        backend: AsyncInMemoryBackend,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        await _store_sessions(store, ("s", "kept", _session("x")))
        await backend.set_item(
            "crypto.sessionsneedingbackup", '{"legacykey":true,"s/kept":true}'
        )

        with caplog.at_level(logging.WARNING, logger="async_crypto_store.store.backup"):
            sessions = await store.get_sessions_needing_backup(0)

        assert [s.session_id for s in sessions] == ["kept"]
        assert "legacykey" in caplog.text


# ---------------------------------------------------------------------------
# Shared history
# ---------------------------------------------------------------------------


class TestSharedHistory:
    @pytest.mark.asyncio
    async def test_shared_history_sessions_append(self, store: AsyncCryptoStore) -> None:
        assert await store.get_shared_history_inbound_group_sessions("!room:hs") == []

        await store.add_shared_history_inbound_group_session("!room:hs", "sender1", "sess1")
        await store.add_shared_history_inbound_group_session("!room:hs", "sender2", "sess2")
        await store.add_shared_history_inbound_group_session("!other:hs", "sender3", "sess3")

        assert await store.get_shared_history_inbound_group_sessions("!room:hs") == [
            ("sender1", "sess1"),
            ("sender2", "sess2"),
        ]

    @pytest.mark.asyncio
    async def test_take_parked_history_clears_it(
        self, store: AsyncCryptoStore, backend: AsyncInMemoryBackend
    ) -> None:
        first = {"senderId": "@a:hs", "senderKey": "k1", "sessionId": "s1", "sessionKey": "x"}
        second = {"senderId": "@b:hs", "senderKey": "k2", "sessionId": "s2", "sessionKey": "y"}
        await store.add_parked_shared_history("!room:hs", first)
        await store.add_parked_shared_history("!room:hs", second)

        assert await store.take_parked_shared_history("!room:hs") == [first, second]
        assert await store.take_parked_shared_history("!room:hs") == []
        assert await backend.list_all_keys() == []

    @pytest.mark.asyncio
    async def test_take_parked_history_for_unknown_room(self, store: AsyncCryptoStore) -> None:
        assert await store.take_parked_shared_history("!nothing:hs") == []
