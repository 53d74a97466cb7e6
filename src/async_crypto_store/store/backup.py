"""Backup membership and shared-history bookkeeping.

These side tables annotate inbound group sessions but are stored
independently of them:

- the *needs backup* set is one JSON object under a singleton key, mapping
  ``composite_key(sender_key, session_id)`` to ``true``;
- shared-history sessions and parked shared history are one JSON list per
  room.

None of these operations take part in a ``Transaction``; they talk to the
backend directly and raise straight to the caller.

Classes
-------
- BackupBookkeepingMixin  — mixed into ``AsyncCryptoStore``
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

from async_crypto_store.storage.async_base import AsyncKeyValueBackend
from async_crypto_store.store import keys as k
from async_crypto_store.store.models import GroupSessionRecord
from async_crypto_store.store.transaction import Transaction

logger = logging.getLogger(__name__)


class BackupBookkeepingMixin:
    """Secondary indexes over inbound group sessions.

    Expects the host class to provide ``_keys`` (a ``KeyScheme``),
    ``_backend`` and the ``_get_json`` / ``_set_json`` helpers.
    """

    _keys: k.KeyScheme
    _backend: AsyncKeyValueBackend

    # ------------------------------------------------------------------
    # Sessions needing backup
    # ------------------------------------------------------------------

    async def _load_backup_membership(self) -> dict[str, bool]:
        membership = await self._get_json(self._keys.singleton(k.SESSIONS_NEEDING_BACKUP))
        return dict(membership or {})

    async def _save_backup_membership(self, membership: dict[str, bool]) -> None:
        await self._set_json(self._keys.singleton(k.SESSIONS_NEEDING_BACKUP), membership)

    async def get_sessions_needing_backup(self, limit: int = 0) -> list[GroupSessionRecord]:
        """Return group sessions marked as needing backup.

        Parameters
        ----------
        limit:
            Stop after this many sessions.  ``0`` means no limit.

        Returns
        -------
        list[GroupSessionRecord]
            Marked sessions joined with their stored session data.  Marked
            sessions whose data has since been deleted are skipped.
        """
        membership = await self._load_backup_membership()
        sessions: list[GroupSessionRecord] = []

        for member in membership:
            parts = k.split_composite_key(member)
            if len(parts) != 2:
                logger.warning("Ignoring malformed needs-backup entry %r", member)
                continue
            sender_key, session_id = parts
            session_data = await self._get_json(
                self._keys.inbound_group_session(sender_key, session_id)
            )
            if session_data is None:
                logger.warning(
                    "Could not find session data for inbound group session %s "
                    "marked as needing backup",
                    session_id,
                )
                continue

            sessions.append(
                GroupSessionRecord(
                    sender_key=sender_key,
                    session_id=session_id,
                    session_data=session_data,
                )
            )
            if limit and len(sessions) >= limit:
                break

        return sessions

    async def count_sessions_needing_backup(self, txn: Transaction | None = None) -> int:
        """Return the number of sessions marked as needing backup."""
        return len(await self._load_backup_membership())

    async def mark_sessions_needing_backup(
        self,
        sessions: Iterable[GroupSessionRecord],
        txn: Transaction | None = None,
    ) -> None:
        """Add ``sessions`` to the needs-backup set."""
        membership = await self._load_backup_membership()
        for session in sessions:
            membership[k.composite_key(session.sender_key, session.session_id)] = True
        await self._save_backup_membership(membership)

    async def unmark_sessions_needing_backup(
        self,
        sessions: Iterable[GroupSessionRecord],
        txn: Transaction | None = None,
    ) -> None:
        """Remove ``sessions`` from the needs-backup set."""
        membership = await self._load_backup_membership()
        for session in sessions:
            membership.pop(k.composite_key(session.sender_key, session.session_id), None)
        await self._save_backup_membership(membership)

    # ------------------------------------------------------------------
    # Shared history
    # ------------------------------------------------------------------

    async def add_shared_history_inbound_group_session(
        self,
        room_id: str,
        sender_key: str,
        session_id: str,
        txn: Transaction | None = None,
    ) -> None:
        """Record that a group session in ``room_id`` has shareable history."""
        key = self._keys.shared_history_inbound_group_sessions(room_id)
        sessions = (await self._get_json(key)) or []
        sessions.append([sender_key, session_id])
        await self._set_json(key, sessions)

    async def get_shared_history_inbound_group_sessions(
        self,
        room_id: str,
        txn: Transaction | None = None,
    ) -> list[tuple[str, str]]:
        """Return the ``(sender_key, session_id)`` pairs recorded for ``room_id``."""
        key = self._keys.shared_history_inbound_group_sessions(room_id)
        sessions = (await self._get_json(key)) or []
        return [(sender_key, session_id) for sender_key, session_id in sessions]

    async def add_parked_shared_history(
        self,
        room_id: str,
        data: Any,
        txn: Transaction | None = None,
    ) -> None:
        """Append ``data`` to the parked shared history for ``room_id``."""
        key = self._keys.parked_shared_history(room_id)
        parked = (await self._get_json(key)) or []
        parked.append(data)
        await self._set_json(key, parked)

    async def take_parked_shared_history(
        self,
        room_id: str,
        txn: Transaction | None = None,
    ) -> list[Any]:
        """Return and clear the parked shared history for ``room_id``."""
        key = self._keys.parked_shared_history(room_id)
        parked = (await self._get_json(key)) or []
        await self._backend.remove_item(key)
        logger.debug("Took %d parked shared history entries for %s", len(parked), room_id)
        return list(parked)


__all__ = ["BackupBookkeepingMixin"]
