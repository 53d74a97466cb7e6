"""End-to-end encryption storage on top of a flat key-value backend.

``AsyncCryptoStore`` implements the data-access contract of an encryption
layer (Olm sessions, inbound group sessions, device and room metadata,
cross-signing material, key requests) using nothing but the four
operations of ``AsyncKeyValueBackend``.

Operations that accept a ``Transaction`` are scheduled on it with
``Transaction.execute`` and hand their result to a callback; errors are
reported when the transaction settles.  All other operations are plain
coroutines that call the backend directly and raise to their caller.

Listings scan the full key listing once and then fetch every matching key
in sequence, so a listing over N entries costs N + 1 backend round trips.
Nothing is cached: every read reflects the backend at call time.

Classes
-------
- AsyncCryptoStore  — the crypto store facade
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional, TypeVar

from async_crypto_store.clock import Clock, SystemClock
from async_crypto_store.config import CryptoStoreConfig
from async_crypto_store.storage.async_base import AsyncKeyValueBackend
from async_crypto_store.store import keys as k
from async_crypto_store.store.backup import BackupBookkeepingMixin
from async_crypto_store.store.codec import EntityCodec
from async_crypto_store.store.models import (
    ErrorDevice,
    ExtendedGroupSessionRecord,
    GroupSessionRecord,
    MigrationState,
    OutgoingRoomKeyRequest,
    RoomKeyRequestBody,
    SessionProblem,
)
from async_crypto_store.store.transaction import Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mode = Literal["readonly", "readwrite"]
MODE_READONLY: Mode = "readonly"
MODE_READWRITE: Mode = "readwrite"

Callback = Callable[..., Optional[Awaitable[Any]]]
KeyPair = tuple[Optional[str], Optional[str]]


async def _deliver(func: Callback, *args: Any) -> None:
    """Call ``func`` with ``args``, awaiting the result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        await result


class AsyncCryptoStore(BackupBookkeepingMixin):
    """Crypto store backed by an ``AsyncKeyValueBackend``.

    Parameters
    ----------
    backend:
        The key-value backend holding all data.
    config:
        Optional configuration.  Defaults to ``CryptoStoreConfig()``.
    clock:
        Source of timestamps for session problems.  Defaults to the
        system clock.
    """

    def __init__(
        self,
        backend: AsyncKeyValueBackend,
        config: CryptoStoreConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._config = config or CryptoStoreConfig()
        self._keys = k.KeyScheme(
            key_prefix=self._config.key_prefix,
            escape_room_ids=self._config.escape_room_ids,
        )
        self._codec = EntityCodec()
        self._clock: Clock = clock or SystemClock()
        self._initialized = False

    @property
    def backend(self) -> AsyncKeyValueBackend:
        return self._backend

    @property
    def keys(self) -> k.KeyScheme:
        return self._keys

    @property
    def config(self) -> CryptoStoreConfig:
        return self._config

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_json(self, key: str) -> Any:
        return self._codec.decode(key, await self._backend.get_item(key))

    async def _set_json(self, key: str, value: Any) -> None:
        await self._backend.set_item(key, self._codec.encode(value))

    async def _keys_with_prefix(self, prefix: str) -> list[str]:
        return self._keys.filter(await self._backend.list_all_keys(), prefix)

    async def _outgoing_key_requests(self) -> list[OutgoingRoomKeyRequest]:
        requests = []
        for key in await self._keys_with_prefix(self._keys.prefix(k.OUTGOING_KEY_REQUESTS)):
            stored = await self._get_json(key)
            if stored is not None:
                requests.append(OutgoingRoomKeyRequest.model_validate(stored))
        return requests

    async def _get_outgoing_key_request(self, request_id: str) -> OutgoingRoomKeyRequest | None:
        stored = await self._get_json(self._keys.outgoing_key_request(request_id))
        if stored is None:
            return None
        return OutgoingRoomKeyRequest.model_validate(stored)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> "AsyncCryptoStore":
        """Mark the store as ready for use and return it."""
        self._initialized = True
        return self

    async def contains_data(self) -> bool:
        """Return True once ``startup`` has been called."""
        return self._initialized

    async def delete_all_data(self) -> None:
        """Remove every key under the store's prefix.

        Keys outside the prefix are left untouched.
        """
        keys = await self._keys_with_prefix(self._keys.namespace)
        for key in keys:
            await self._backend.remove_item(key)
        logger.debug("AsyncCryptoStore: deleted %d keys", len(keys))

    async def do_txn(
        self,
        mode: Mode,
        stores: Iterable[str],
        func: Callable[[Transaction], T | Awaitable[T]],
        log: logging.Logger | None = None,
    ) -> T:
        """Run ``func`` with a fresh transaction and wait for it to settle.

        ``func`` itself runs as the first operation of the transaction, so
        the transaction cannot settle while ``func`` is still scheduling
        work, even if ``func`` is a coroutine function.

        Parameters
        ----------
        mode:
            ``"readonly"`` or ``"readwrite"``.  Informational only.
        stores:
            Names of the logical stores touched.  Informational only.
        func:
            Called with the transaction.  May return an awaitable.
        log:
            Optional logger for transaction diagnostics.

        Returns
        -------
        T
            Whatever ``func`` returned (awaited if necessary).

        Raises
        ------
        Exception
            The first error raised by any operation in the transaction.
        """
        (log or logger).debug("AsyncCryptoStore: %s transaction on %s", mode, list(stores))
        txn = Transaction()
        results: list[T] = []

        async def body() -> None:
            value = func(txn)
            if inspect.isawaitable(value):
                value = await value
            results.append(value)

        txn.execute(body)
        await txn.wait()
        return results[0]

    # ------------------------------------------------------------------
    # Migration state
    # ------------------------------------------------------------------

    async def get_migration_state(self) -> MigrationState:
        """Return the stored migration state, ``NOT_STARTED`` if unset."""
        state = await self._get_json(self._keys.singleton(k.MIGRATION_STATE))
        if state is None:
            return MigrationState.NOT_STARTED
        return MigrationState(state)

    async def set_migration_state(self, migration_state: MigrationState) -> None:
        await self._set_json(self._keys.singleton(k.MIGRATION_STATE), int(migration_state))

    # ------------------------------------------------------------------
    # Outgoing room key requests
    # ------------------------------------------------------------------

    async def get_or_add_outgoing_room_key_request(
        self, request: OutgoingRoomKeyRequest
    ) -> OutgoingRoomKeyRequest:
        """Return the stored request with the same body, storing ``request`` if none."""
        existing = await self.get_outgoing_room_key_request(request.request_body)
        if existing is not None:
            return existing
        await self._set_json(self._keys.outgoing_key_request(request.request_id), request)
        return request

    async def get_outgoing_room_key_request(
        self, request_body: RoomKeyRequestBody
    ) -> OutgoingRoomKeyRequest | None:
        """Return the first stored request for the same room and session."""
        for request in await self._outgoing_key_requests():
            if request.matches_body(request_body):
                return request
        return None

    async def get_outgoing_room_key_request_by_state(
        self, wanted_states: Iterable[int]
    ) -> OutgoingRoomKeyRequest | None:
        """Return the first stored request in any of ``wanted_states``."""
        wanted = set(wanted_states)
        for request in await self._outgoing_key_requests():
            if request.state in wanted:
                return request
        return None

    async def get_all_outgoing_room_key_requests_by_state(
        self, wanted_state: int
    ) -> list[OutgoingRoomKeyRequest]:
        return [r for r in await self._outgoing_key_requests() if r.state == wanted_state]

    async def get_outgoing_room_key_requests_by_target(
        self, user_id: str, device_id: str, wanted_states: Iterable[int]
    ) -> list[OutgoingRoomKeyRequest]:
        """Return requests in ``wanted_states`` addressed to the given device."""
        wanted = set(wanted_states)
        return [
            r
            for r in await self._outgoing_key_requests()
            if r.state in wanted and r.is_addressed_to(user_id, device_id)
        ]

    async def update_outgoing_room_key_request(
        self, request_id: str, expected_state: int, updates: dict[str, Any]
    ) -> OutgoingRoomKeyRequest | None:
        """Apply ``updates`` to a stored request if it is in ``expected_state``.

        ``updates`` may use either field names or their stored aliases.

        Returns
        -------
        OutgoingRoomKeyRequest | None
            The updated request, or ``None`` if the request does not exist
            or is in a different state.
        """
        request = await self._get_outgoing_key_request(request_id)
        if request is None or request.state != expected_state:
            return None

        data = request.model_dump(by_alias=True)
        for name, value in updates.items():
            field = OutgoingRoomKeyRequest.model_fields.get(name)
            data[(field.alias or name) if field is not None else name] = value
        updated = OutgoingRoomKeyRequest.model_validate(data)

        await self._set_json(self._keys.outgoing_key_request(request_id), updated)
        return updated

    async def delete_outgoing_room_key_request(
        self, request_id: str, expected_state: int
    ) -> OutgoingRoomKeyRequest | None:
        """Delete a stored request if it is in ``expected_state``.

        Returns
        -------
        OutgoingRoomKeyRequest | None
            The deleted request, or ``None`` if nothing was deleted.
        """
        request = await self._get_outgoing_key_request(request_id)
        if request is None or request.state != expected_state:
            return None
        await self._backend.remove_item(self._keys.outgoing_key_request(request_id))
        return request

    # ------------------------------------------------------------------
    # Account, cross-signing and secret storage
    # ------------------------------------------------------------------

    def get_account(self, txn: Transaction, func: Callback) -> None:
        async def operation() -> None:
            await _deliver(func, await self._get_json(self._keys.singleton(k.ACCOUNT)))

        txn.execute(operation)

    def store_account(self, txn: Transaction, account_pickle: str) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.singleton(k.ACCOUNT), account_pickle)

        txn.execute(operation)

    def get_cross_signing_keys(self, txn: Transaction, func: Callback) -> None:
        async def operation() -> None:
            await _deliver(func, await self._get_json(self._keys.singleton(k.CROSS_SIGNING_KEYS)))

        txn.execute(operation)

    def store_cross_signing_keys(self, txn: Transaction, keys: dict[str, Any]) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.singleton(k.CROSS_SIGNING_KEYS), keys)

        txn.execute(operation)

    def get_secret_store_private_key(self, txn: Transaction, func: Callback, key_type: str) -> None:
        async def operation() -> None:
            await _deliver(func, await self._get_json(self._keys.secret_store_private_key(key_type)))

        txn.execute(operation)

    def store_secret_store_private_key(self, txn: Transaction, key_type: str, key: Any) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.secret_store_private_key(key_type), key)

        txn.execute(operation)

    # ------------------------------------------------------------------
    # Olm sessions
    # ------------------------------------------------------------------

    def count_end_to_end_sessions(self, txn: Transaction, func: Callback) -> None:
        async def operation() -> None:
            keys = await self._keys_with_prefix(self._keys.prefix(k.SESSIONS))
            await _deliver(func, len(keys))

        txn.execute(operation)

    def get_end_to_end_session(
        self, device_key: str, session_id: str, txn: Transaction, func: Callback
    ) -> None:
        async def operation() -> None:
            await _deliver(func, await self._get_json(self._keys.session(device_key, session_id)))

        txn.execute(operation)

    def get_end_to_end_sessions(self, device_key: str, txn: Transaction, func: Callback) -> None:
        """Deliver a dict of session id to session info for one device."""

        async def operation() -> None:
            sessions: dict[str, Any] = {}
            for key in await self._keys_with_prefix(self._keys.prefix(k.SESSIONS, device_key)):
                _, session_id = self._keys.decode(k.SESSIONS, key)
                sessions[session_id] = await self._get_json(key)
            await _deliver(func, sessions)

        txn.execute(operation)

    def get_all_end_to_end_sessions(self, txn: Transaction, func: Callback) -> None:
        """Deliver every stored session info, then ``None``."""

        async def operation() -> None:
            for key in await self._keys_with_prefix(self._keys.prefix(k.SESSIONS)):
                await _deliver(func, await self._get_json(key))
            await _deliver(func, None)

        txn.execute(operation)

    def store_end_to_end_session(
        self, device_key: str, session_id: str, session_info: Any, txn: Transaction
    ) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.session(device_key, session_id), session_info)

        txn.execute(operation)

    async def store_end_to_end_session_problem(self, device_key: str, type: str, fixed: bool) -> None:
        """Append a problem to the device's log, keeping it sorted by time."""
        key = self._keys.session_problems(device_key)
        problems = await self._load_problems(key)
        problems.append(SessionProblem(type=type, fixed=fixed, time=self._clock.now_ms()))
        problems.sort(key=lambda p: p.time)
        await self._set_json(key, problems)

    async def get_end_to_end_session_problem(
        self, device_key: str, timestamp: int
    ) -> SessionProblem | None:
        """Return the first problem recorded after ``timestamp``.

        The returned problem carries the ``fixed`` flag of the most recent
        problem, since fixing the session fixes every earlier problem too.
        If no problem is newer than ``timestamp``, the most recent problem
        is returned unless it is fixed.
        """
        problems = await self._load_problems(self._keys.session_problems(device_key))
        if not problems:
            return None

        last = problems[-1]
        for problem in problems:
            if problem.time > timestamp:
                return problem.model_copy(update={"fixed": last.fixed})

        return None if last.fixed else last

    async def _load_problems(self, key: str) -> list[SessionProblem]:
        stored = (await self._get_json(key)) or []
        return [SessionProblem.model_validate(p) for p in stored]

    async def filter_out_notified_error_devices(
        self, devices: Iterable[ErrorDevice]
    ) -> list[ErrorDevice]:
        """Return the devices not yet notified, recording them as notified."""
        key = self._keys.singleton(k.NOTIFIED_ERROR_DEVICES)
        notified: dict[str, dict[str, bool]] = (await self._get_json(key)) or {}

        pending: list[ErrorDevice] = []
        for device in devices:
            user_devices = notified.setdefault(device.user_id, {})
            if device.device_id not in user_devices:
                pending.append(device)
                user_devices[device.device_id] = True

        await self._set_json(key, notified)
        return pending

    async def get_end_to_end_sessions_batch(self) -> list[Any] | None:
        """Return up to ``session_batch_size`` stored sessions.

        Returns ``None`` when no sessions are stored at all.
        """
        result: list[Any] = []
        for key in await self._keys_with_prefix(self._keys.prefix(k.SESSIONS)):
            session = await self._get_json(key)
            if session is None:
                logger.warning("Could not find session %s", key)
                continue
            result.append(session)
            if len(result) >= self._config.session_batch_size:
                return result

        return result or None

    async def delete_end_to_end_sessions_batch(self, sessions: Iterable[KeyPair]) -> None:
        """Delete ``(device_key, session_id)`` pairs, skipping incomplete ones."""
        for device_key, session_id in sessions:
            if device_key is None or session_id is None:
                continue
            await self._backend.remove_item(self._keys.session(device_key, session_id))

    # ------------------------------------------------------------------
    # Inbound group sessions
    # ------------------------------------------------------------------

    def get_end_to_end_inbound_group_session(
        self, sender_key: str, session_id: str, txn: Transaction, func: Callback
    ) -> None:
        """Deliver ``(session_data, withheld)`` for one group session."""

        async def operation() -> None:
            session_data = await self._get_json(
                self._keys.inbound_group_session(sender_key, session_id)
            )
            withheld = await self._get_json(
                self._keys.inbound_group_session_withheld(sender_key, session_id)
            )
            await _deliver(func, session_data, withheld)

        txn.execute(operation)

    def get_all_end_to_end_inbound_group_sessions(self, txn: Transaction, func: Callback) -> None:
        """Deliver a ``GroupSessionRecord`` per stored group session, then ``None``."""

        async def operation() -> None:
            for key in await self._keys_with_prefix(self._keys.prefix(k.INBOUND_GROUP_SESSIONS)):
                sender_key, session_id = self._keys.decode(k.INBOUND_GROUP_SESSIONS, key)
                record = GroupSessionRecord(
                    sender_key=sender_key,
                    session_id=session_id,
                    session_data=await self._get_json(key),
                )
                await _deliver(func, record)
            await _deliver(func, None)

        txn.execute(operation)

    def add_end_to_end_inbound_group_session(
        self, sender_key: str, session_id: str, session_data: Any, txn: Transaction
    ) -> None:
        """Store a group session unless one is already stored under the same ids."""

        async def operation() -> None:
            existing = await self._get_json(self._keys.inbound_group_session(sender_key, session_id))
            if existing is not None:
                logger.debug("AsyncCryptoStore: group session %s already stored", session_id)
                return
            self.store_end_to_end_inbound_group_session(sender_key, session_id, session_data, txn)

        txn.execute(operation)

    def store_end_to_end_inbound_group_session(
        self, sender_key: str, session_id: str, session_data: Any, txn: Transaction
    ) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.inbound_group_session(sender_key, session_id), session_data)

        txn.execute(operation)

    def store_end_to_end_inbound_group_session_withheld(
        self, sender_key: str, session_id: str, withheld: Any, txn: Transaction
    ) -> None:
        async def operation() -> None:
            await self._set_json(
                self._keys.inbound_group_session_withheld(sender_key, session_id), withheld
            )

        txn.execute(operation)

    async def count_end_to_end_inbound_group_sessions(self) -> int:
        return len(await self._keys_with_prefix(self._keys.prefix(k.INBOUND_GROUP_SESSIONS)))

    async def get_end_to_end_inbound_group_sessions_batch(
        self,
    ) -> list[ExtendedGroupSessionRecord] | None:
        """Return up to ``session_batch_size`` group sessions with backup status.

        Returns ``None`` when no group sessions are stored at all.
        """
        membership = await self._load_backup_membership()
        result: list[ExtendedGroupSessionRecord] = []

        for key in await self._keys_with_prefix(self._keys.prefix(k.INBOUND_GROUP_SESSIONS)):
            sender_key, session_id = self._keys.decode(k.INBOUND_GROUP_SESSIONS, key)
            result.append(
                ExtendedGroupSessionRecord(
                    sender_key=sender_key,
                    session_id=session_id,
                    session_data=await self._get_json(key),
                    needs_backup=k.composite_key(sender_key, session_id) in membership,
                )
            )
            if len(result) >= self._config.session_batch_size:
                return result

        return result or None

    async def delete_end_to_end_inbound_group_sessions_batch(
        self, sessions: Iterable[KeyPair]
    ) -> None:
        """Delete ``(sender_key, session_id)`` pairs, skipping incomplete ones."""
        for sender_key, session_id in sessions:
            if sender_key is None or session_id is None:
                continue
            await self._backend.remove_item(self._keys.inbound_group_session(sender_key, session_id))

    # ------------------------------------------------------------------
    # Device data and rooms
    # ------------------------------------------------------------------

    def get_end_to_end_device_data(self, txn: Transaction, func: Callback) -> None:
        async def operation() -> None:
            await _deliver(func, await self._get_json(self._keys.singleton(k.DEVICE_DATA)))

        txn.execute(operation)

    def store_end_to_end_device_data(self, device_data: Any, txn: Transaction) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.singleton(k.DEVICE_DATA), device_data)

        txn.execute(operation)

    def store_end_to_end_room(self, room_id: str, room_info: Any, txn: Transaction) -> None:
        async def operation() -> None:
            await self._set_json(self._keys.room(room_id), room_info)

        txn.execute(operation)

    def get_end_to_end_rooms(self, txn: Transaction, func: Callback) -> None:
        """Deliver a dict of room id to room encryption config."""

        async def operation() -> None:
            rooms: dict[str, Any] = {}
            for key in await self._keys_with_prefix(self._keys.prefix(k.ROOMS)):
                rooms[self._keys.decode_room(key)] = await self._get_json(key)
            await _deliver(func, rooms)

        txn.execute(operation)

    def __repr__(self) -> str:
        return f"AsyncCryptoStore(backend={self._backend!r}, key_prefix={self._keys.key_prefix!r})"


__all__ = ["AsyncCryptoStore", "MODE_READONLY", "MODE_READWRITE", "Mode"]
