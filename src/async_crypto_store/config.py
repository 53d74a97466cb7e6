"""Configuration for the crypto store.

Classes
-------
- CryptoStoreConfig  — namespace, batching and key-encoding settings
"""
from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

#: Number of sessions returned per call by the batch export operations.
SESSION_BATCH_SIZE: int = 50


class CryptoStoreConfig(BaseModel):
    """Configuration parameters for ``AsyncCryptoStore``.

    Parameters
    ----------
    key_prefix:
        Root tag prepended to every key the store writes.  Keys outside
        this namespace are never read or removed.  Default: ``"crypto."``.
    session_batch_size:
        Maximum number of entries returned by the batch export operations.
        Default: 50.
    escape_room_ids:
        When False (default) room identifiers are written into room keys
        verbatim, matching data written by earlier releases.  Set to True
        to percent-escape them like every other identifier.
    """

    key_prefix: str = Field(default="crypto.", min_length=1)
    session_batch_size: int = Field(default=SESSION_BATCH_SIZE, ge=1)
    escape_room_ids: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_yaml(cls, path: str | Path) -> "CryptoStoreConfig":
        """Load a configuration from a YAML file.

        An empty file yields the defaults.

        Parameters
        ----------
        path:
            Path to a YAML mapping of field names to values.

        Returns
        -------
        CryptoStoreConfig
            The validated configuration.
        """
        raw = Path(path).read_text(encoding="utf-8")
        data = yaml.safe_load(raw) or {}
        return cls.model_validate(data)


__all__ = ["CryptoStoreConfig", "SESSION_BATCH_SIZE"]
