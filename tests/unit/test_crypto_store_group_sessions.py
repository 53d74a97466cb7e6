"""Unit tests for AsyncCryptoStore inbound group session operations."""
from __future__ import annotations

from typing import Any

import pytest

from async_crypto_store.storage.async_memory import AsyncInMemoryBackend
from async_crypto_store.store.crypto_store import MODE_READONLY, MODE_READWRITE, AsyncCryptoStore
from async_crypto_store.store.models import ExtendedGroupSessionRecord, GroupSessionRecord
from async_crypto_store.store.transaction import Transaction


def _session(session: str, room_id: str = "some-id") -> dict[str, Any]:
    return {"room_id": room_id, "session": session, "forwardingCurve25519KeyChain": []}


@pytest.fixture()
def backend() -> AsyncInMemoryBackend:
    return AsyncInMemoryBackend()


@pytest.fixture()
def store(backend: AsyncInMemoryBackend) -> AsyncCryptoStore:
    return AsyncCryptoStore(backend)


async def _get_group_session(store: AsyncCryptoStore, sender_key: str, session_id: str) -> Any:
    calls: list[tuple[Any, Any]] = []
    await store.do_txn(
        MODE_READONLY,
        [],
        lambda txn: store.get_end_to_end_inbound_group_session(
            sender_key, session_id, txn, lambda data, withheld: calls.append((data, withheld))
        ),
    )
    assert len(calls) == 1
    return calls[0]


async def _get_all(store: AsyncCryptoStore) -> list[GroupSessionRecord | None]:
    calls: list[GroupSessionRecord | None] = []
    await store.do_txn(
        MODE_READONLY, [], lambda txn: store.get_all_end_to_end_inbound_group_sessions(txn, calls.append)
    )
    return calls


class TestAddAndStore:
    @pytest.mark.asyncio
    async def test_add_keeps_the_first_session(self, store: AsyncCryptoStore) -> None:
        for name in ("some-session", "another-session"):
            await store.do_txn(
                MODE_READWRITE,
                [],
                lambda txn, name=name: store.add_end_to_end_inbound_group_session(
                    "senderkey1", "sessid1", _session(name), txn
                ),
            )
        data, _ = await _get_group_session(store, "senderkey1", "sessid1")
        assert data == _session("some-session")

    @pytest.mark.asyncio
    async def test_store_overwrites(self, store: AsyncCryptoStore) -> None:
        for name in ("some-session", "another-session"):
            await store.do_txn(
                MODE_READWRITE,
                [],
                lambda txn, name=name: store.store_end_to_end_inbound_group_session(
                    "senderkey1", "sessid1", _session(name), txn
                ),
            )
        data, _ = await _get_group_session(store, "senderkey1", "sessid1")
        assert data == _session("another-session")

    @pytest.mark.asyncio
    async def test_missing_session_is_none(self, store: AsyncCryptoStore) -> None:
        assert await _get_group_session(store, "nobody", "nothing") == (None, None)

    @pytest.mark.asyncio
    async def test_withheld_data_is_returned_alongside(self, store: AsyncCryptoStore) -> None:
        withheld = {"room_id": "some-id", "code": "some-code", "reason": "some-reason"}

        def write(txn: Transaction) -> None:
            store.store_end_to_end_inbound_group_session(
                "senderkey1", "sessid1", _session("some-session"), txn
            )
            store.store_end_to_end_inbound_group_session_withheld(
                "senderkey1", "sessid1", withheld, txn
            )

        await store.do_txn(MODE_READWRITE, [], write)
        assert await _get_group_session(store, "senderkey1", "sessid1") == (
            _session("some-session"),
            withheld,
        )

    @pytest.mark.asyncio
    async def test_count_ignores_withheld_records(self, store: AsyncCryptoStore) -> None:
        def write(txn: Transaction) -> None:
            store.store_end_to_end_inbound_group_session("a", "1", _session("x"), txn)
            store.store_end_to_end_inbound_group_session("b", "2", _session("y"), txn)
            store.store_end_to_end_inbound_group_session_withheld("a", "1", {"code": "c"}, txn)

        await store.do_txn(MODE_READWRITE, [], write)
        assert await store.count_end_to_end_inbound_group_sessions() == 2


class TestListing:
    @pytest.mark.asyncio
    async def test_all_group_sessions(self, store: AsyncCryptoStore) -> None:
        stored = [
            ("senderkey1", "sessid1", _session("some-session")),
            ("senderkey1", "sessid2", _session("another-session")),
            ("senderkey2", "sessid1", _session("yet-another-session")),
        ]
        for sender_key, session_id, data in stored:
            await store.do_txn(
                MODE_READWRITE,
                [],
                lambda txn, s=sender_key, i=session_id, d=data: (
                    store.store_end_to_end_inbound_group_session(s, i, d, txn)
                ),
            )

        calls = await _get_all(store)
        assert len(calls) == 4
        assert calls[-1] is None
        received = {
            (r.sender_key, r.session_id): r.session_data for r in calls[:-1] if r is not None
        }
        assert received == {(s, i): d for s, i, d in stored}

    @pytest.mark.asyncio
    async def test_keys_and_values_can_contain_slashes(self, store: AsyncCryptoStore) -> None:
        data = {"room_id": "some/id", "session": "some/session", "forwardingCurve25519KeyChain": []}
        await store.do_txn(
            MODE_READWRITE,
            [],
            lambda txn: store.store_end_to_end_inbound_group_session(
                "this/that", "here/there", data, txn
            ),
        )
        calls = await _get_all(store)
        assert calls[0] == GroupSessionRecord(
            sender_key="this/that", session_id="here/there", session_data=data
        )
        assert await _get_group_session(store, "this/that", "here/there") == (data, None)

    @pytest.mark.asyncio
    async def test_empty_listing_delivers_only_sentinel(self, store: AsyncCryptoStore) -> None:
        assert await _get_all(store) == [None]


class TestBatches:
    @pytest.mark.asyncio
    async def test_batch_is_none_when_empty(self, store: AsyncCryptoStore) -> None:
        assert await store.get_end_to_end_inbound_group_sessions_batch() is None

    @pytest.mark.asyncio
    async def test_batch_reports_backup_status(self, store: AsyncCryptoStore) -> None:
        def write(txn: Transaction) -> None:
            store.store_end_to_end_inbound_group_session("bob", "one", _session("x"), txn)
            store.store_end_to_end_inbound_group_session("bob", "two", _session("y"), txn)

        await store.do_txn(MODE_READWRITE, [], write)
        await store.mark_sessions_needing_backup(
            [GroupSessionRecord(sender_key="bob", session_id="one")]
        )

        batch = await store.get_end_to_end_inbound_group_sessions_batch()
        assert batch is not None
        by_id = {r.session_id: r for r in batch}
        assert by_id["one"] == ExtendedGroupSessionRecord(
            sender_key="bob", session_id="one", session_data=_session("x"), needs_backup=True
        )
        assert by_id["two"].needs_backup is False

    @pytest.mark.asyncio
    async def test_delete_batch(self, store: AsyncCryptoStore) -> None:
        def write(txn: Transaction) -> None:
            store.store_end_to_end_inbound_group_session("s/1", "a", _session("x"), txn)
            store.store_end_to_end_inbound_group_session("s/1", "b", _session("y"), txn)

        await store.do_txn(MODE_READWRITE, [], write)
        await store.delete_end_to_end_inbound_group_sessions_batch([("s/1", "a"), ("s/1", None)])

        assert await store.count_end_to_end_inbound_group_sessions() == 1
        assert (await _get_group_session(store, "s/1", "a"))[0] is None
