"""JSON encoding of stored entities.

Classes
-------
- MalformedEntryError  — a stored value could not be decoded
- EntityCodec          — encode values to JSON text and back
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel


class MalformedEntryError(ValueError):
    """Raised when the value stored under a key is not valid JSON."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Malformed value stored under {key!r}: {reason}")


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


class EntityCodec:
    """Serialize entity values for the key-value backend.

    Pydantic models are dumped by alias in JSON mode, so nested models
    inside plain containers are handled too.  ``None`` encodes to
    ``"null"``, which decodes back to ``None`` just like an absent key.
    """

    def encode(self, value: Any) -> str:
        """Return the JSON text for ``value``."""
        return json.dumps(_to_jsonable(value), separators=(",", ":"))

    def decode(self, key: str, raw: str | None) -> Any:
        """Return the value decoded from ``raw``.

        Parameters
        ----------
        key:
            The key ``raw`` was read from; used in error messages.
        raw:
            Text returned by the backend, or ``None`` if the key is absent.

        Raises
        ------
        MalformedEntryError
            If ``raw`` is not valid JSON.
        """
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedEntryError(key, str(exc)) from exc


__all__ = ["EntityCodec", "MalformedEntryError"]
