"""Typed entity models for the crypto store.

Only the entities the store has to look inside are modelled here: outgoing
key requests (queried by body, state and recipient), session problems
(time-sorted), group-session records handed back by listings, and the
devices passed to the notified-error filter.  Every other payload is an
opaque JSON-compatible value owned by the encryption layer.

Field aliases follow the camelCase names used by data already on disk.

Classes
-------
- MigrationState            — progress of a crypto-store migration
- RoomKeyRequestState       — lifecycle states of an outgoing key request
- RoomKeyRequestBody        — the ``m.room_key_request`` body
- RoomKeyRequestRecipient   — a (user, device) target of a key request
- OutgoingRoomKeyRequest    — a stored outgoing key request
- SessionProblem            — one entry in a device's problem log
- GroupSessionRecord        — an inbound group session with its identifiers
- ExtendedGroupSessionRecord — a group session record with backup status
- ErrorDevice               — a device that may be notified of an error
"""
from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MigrationState(IntEnum):
    """How far a migration to a newer crypto backend has progressed."""

    NOT_STARTED = 0
    INITIAL_DATA_MIGRATED = 1
    OLM_SESSIONS_MIGRATED = 2
    MEGOLM_SESSIONS_MIGRATED = 3
    ROOM_SETTINGS_MIGRATED = 4
    INITIAL_OWN_KEY_QUERY_DONE = 5


class RoomKeyRequestState(IntEnum):
    """Lifecycle states for an outgoing room key request."""

    UNSENT = 0
    SENT = 1
    CANCELLATION_PENDING = 2
    CANCELLATION_PENDING_AND_WILL_RESEND = 3


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RoomKeyRequestBody(_WireModel):
    """Body of a room key request.

    Two requests are considered the same request when they ask for the
    same ``session_id`` in the same ``room_id``.
    """

    algorithm: str
    room_id: str
    session_id: str
    sender_key: str | None = None


class RoomKeyRequestRecipient(_WireModel):
    user_id: str = Field(alias="userId")
    device_id: str = Field(alias="deviceId")


class OutgoingRoomKeyRequest(_WireModel):
    """A room key request this device has sent or is about to send.

    Parameters
    ----------
    request_id:
        Unique identifier used as the storage key.
    request_body:
        The body of the request.
    recipients:
        Devices the request is addressed to.
    state:
        Current ``RoomKeyRequestState`` value.
    request_txn_id:
        Transaction id used when the request was sent, if any.
    cancellation_txn_id:
        Transaction id used when the cancellation was sent, if any.
    """

    request_id: str = Field(alias="requestId")
    request_body: RoomKeyRequestBody = Field(alias="requestBody")
    recipients: list[RoomKeyRequestRecipient] = Field(default_factory=list)
    state: int = RoomKeyRequestState.UNSENT
    request_txn_id: str | None = Field(default=None, alias="requestTxnId")
    cancellation_txn_id: str | None = Field(default=None, alias="cancellationTxnId")

    def matches_body(self, body: RoomKeyRequestBody) -> bool:
        return (
            self.request_body.room_id == body.room_id
            and self.request_body.session_id == body.session_id
        )

    def is_addressed_to(self, user_id: str, device_id: str) -> bool:
        return any(
            r.user_id == user_id and r.device_id == device_id for r in self.recipients
        )


class SessionProblem(_WireModel):
    """A problem recorded against an Olm session with a device.

    ``time`` is milliseconds since the epoch.
    """

    type: str
    fixed: bool
    time: int


class GroupSessionRecord(_WireModel):
    """An inbound group session together with its identifying keys."""

    sender_key: str = Field(alias="senderKey")
    session_id: str = Field(alias="sessionId")
    session_data: Any = Field(default=None, alias="sessionData")


class ExtendedGroupSessionRecord(GroupSessionRecord):
    needs_backup: bool = Field(default=False, alias="needsBackup")


class ErrorDevice(_WireModel):
    """A remote device that may need to be told about a decryption error."""

    user_id: str = Field(alias="userId")
    device_id: str = Field(alias="deviceId")


__all__ = [
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
