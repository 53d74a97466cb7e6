"""Unit tests for async_crypto_store.store.codec."""
from __future__ import annotations

import pytest

from async_crypto_store.store.codec import EntityCodec, MalformedEntryError
from async_crypto_store.store.models import SessionProblem


@pytest.fixture()
def codec() -> EntityCodec:
    return EntityCodec()


class TestEntityCodec:
    def test_absent_decodes_to_none(self, codec: EntityCodec) -> None:
        assert codec.decode("k", None) is None

    def test_null_decodes_to_none(self, codec: EntityCodec) -> None:
        assert codec.decode("k", codec.encode(None)) is None

    def test_plain_values_round_trip(self, codec: EntityCodec) -> None:
        value = {"room_id": "some/id", "forwardingCurve25519KeyChain": []}
        assert codec.decode("k", codec.encode(value)) == value

    def test_models_are_dumped_by_alias(self, codec: EntityCodec) -> None:
        raw = codec.encode([SessionProblem(type="no_olm", fixed=False, time=5)])
        assert codec.decode("k", raw) == [{"type": "no_olm", "fixed": False, "time": 5}]

    def test_malformed_value_raises(self, codec: EntityCodec) -> None:
        with pytest.raises(MalformedEntryError, match="crypto.account") as exc_info:
            codec.decode("crypto.account", "{not json")
        assert exc_info.value.key == "crypto.account"
        assert isinstance(exc_info.value, ValueError)
