"""Storage-key encoding for the crypto store.

Every entity is addressed by one flat key of the form::

    <key_prefix><entity tag><component>/<component>/...

Identifier components are percent-escaped with the same rules as
JavaScript's ``encodeURIComponent`` so that a ``/`` inside a component never
collides with the separator.  Decoding strips the entity prefix, splits on
``/`` and unescapes each segment.

Classes
-------
- KeyScheme  — builds and parses keys for every entity kind
"""
from __future__ import annotations

from typing import Iterable
from urllib.parse import quote, unquote

SEPARATOR = "/"

# Characters encodeURIComponent leaves alone on top of quote()'s defaults.
_SAFE_CHARS = "!*'()"

# Entity tags, relative to the key prefix.
SESSIONS = "sessions/"
SESSION_PROBLEMS = "session.problems/"
INBOUND_GROUP_SESSIONS = "inboundgroupsessions/"
INBOUND_GROUP_SESSIONS_WITHHELD = "inboundgroupsessions.withheld/"
ROOMS = "rooms/"
OUTGOING_KEY_REQUESTS = "outgoingkeyrequest/"
SECRET_STORE_PRIVATE_KEYS = "ssss_cache."
SHARED_HISTORY_INBOUND_GROUP_SESSIONS = "sharedhistory.inboundgroupsessions/"
PARKED_SHARED_HISTORY = "sharedhistory.parked/"

# Singleton entities.
ACCOUNT = "account"
CROSS_SIGNING_KEYS = "cross_signing_keys"
NOTIFIED_ERROR_DEVICES = "notified_error_devices"
DEVICE_DATA = "device_data"
SESSIONS_NEEDING_BACKUP = "sessionsneedingbackup"
MIGRATION_STATE = "migration"


def escape(component: str) -> str:
    """Percent-escape one identifier component."""
    return quote(component, safe=_SAFE_CHARS)


def unescape(segment: str) -> str:
    """Reverse :func:`escape`."""
    return unquote(segment)


def composite_key(*components: str) -> str:
    """Join escaped components with the separator."""
    return SEPARATOR.join(escape(c) for c in components)


def split_composite_key(key: str) -> tuple[str, ...]:
    """Split a key built by :func:`composite_key` back into its components."""
    return tuple(unescape(segment) for segment in key.split(SEPARATOR))


class KeyScheme:
    """Build and decode storage keys under one root prefix.

    Parameters
    ----------
    key_prefix:
        Root tag shared by every key.
    escape_room_ids:
        Percent-escape room identifiers in room keys.  Off by default so
        that keys match data already written with raw room identifiers.
    """

    def __init__(self, key_prefix: str = "crypto.", escape_room_ids: bool = False) -> None:
        self.key_prefix = key_prefix
        self.escape_room_ids = escape_room_ids

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def singleton(self, name: str) -> str:
        return self.key_prefix + name

    def key(self, tag: str, *components: str) -> str:
        """Return the key for ``components`` under entity ``tag``."""
        return self.key_prefix + tag + composite_key(*components)

    def prefix(self, tag: str, *components: str) -> str:
        """Return the listing prefix for ``tag`` narrowed by ``components``.

        The result ends with the separator whenever components are given,
        so that ``"dev"`` never matches keys belonging to ``"dev2"``.
        """
        if not components:
            return self.key_prefix + tag
        return self.key(tag, *components) + SEPARATOR

    def decode(self, tag: str, key: str) -> tuple[str, ...]:
        """Return the unescaped components of ``key`` under entity ``tag``.

        Raises
        ------
        ValueError
            If ``key`` does not belong to ``tag``.
        """
        prefix = self.prefix(tag)
        if not key.startswith(prefix):
            raise ValueError(f"Key {key!r} does not start with {prefix!r}")
        return split_composite_key(key[len(prefix):])

    @staticmethod
    def filter(keys: Iterable[str], prefix: str) -> list[str]:
        return [k for k in keys if k.startswith(prefix)]

    # ------------------------------------------------------------------
    # Entity keys
    # ------------------------------------------------------------------

    @property
    def namespace(self) -> str:
        return self.key_prefix

    def session(self, device_key: str, session_id: str) -> str:
        return self.key(SESSIONS, device_key, session_id)

    def session_problems(self, device_key: str) -> str:
        return self.key(SESSION_PROBLEMS, device_key)

    def inbound_group_session(self, sender_key: str, session_id: str) -> str:
        return self.key(INBOUND_GROUP_SESSIONS, sender_key, session_id)

    def inbound_group_session_withheld(self, sender_key: str, session_id: str) -> str:
        return self.key(INBOUND_GROUP_SESSIONS_WITHHELD, sender_key, session_id)

    def outgoing_key_request(self, request_id: str) -> str:
        return self.key(OUTGOING_KEY_REQUESTS, request_id)

    def secret_store_private_key(self, key_type: str) -> str:
        return self.key(SECRET_STORE_PRIVATE_KEYS, key_type)

    def shared_history_inbound_group_sessions(self, room_id: str) -> str:
        return self.key(SHARED_HISTORY_INBOUND_GROUP_SESSIONS, room_id)

    def parked_shared_history(self, room_id: str) -> str:
        return self.key(PARKED_SHARED_HISTORY, room_id)

    def room(self, room_id: str) -> str:
        if self.escape_room_ids:
            return self.key(ROOMS, room_id)
        return self.prefix(ROOMS) + room_id

    def decode_room(self, key: str) -> str:
        """Return the room identifier encoded in a room key."""
        raw = key[len(self.prefix(ROOMS)):]
        return unescape(raw) if self.escape_room_ids else raw


__all__ = [
    "KeyScheme",
    "SEPARATOR",
    "composite_key",
    "escape",
    "split_composite_key",
    "unescape",
]
