"""
Unit tests for the authenticated session codecs

Covers name binding, tamper detection, key rotation and value serialization.
"""

import time
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from postgrestore.core.codecs import (
    SecureCookieCodec,
    codecs_from_pairs,
    decode_multi,
    encode_multi,
)
from postgrestore.core.errors import CodecError, MultiCodecError, StoreConfigurationError
from utils.helpers import BLOCK_KEY, HASH_KEY, OLD_BLOCK_KEY, OLD_HASH_KEY

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


class TestSecureCookieCodec:
    """Test a single codec"""

    def test_value_map_survives_encoding(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        values = {"foo": "bar", "count": 3, "tags": ["a", "b"], "nested": {"x": None}}

        token = codec.encode("s", values)

        assert isinstance(token, str)
        assert "bar" not in token
        assert codec.decode("s", token) == values

    def test_datetimes_come_back_timezone_aware(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        naive = datetime(2030, 1, 2, 3, 4, 5)

        decoded = codec.decode("s", codec.encode("s", {"when": naive}))

        assert decoded["when"] == naive.replace(tzinfo=timezone.utc)

    def test_token_is_bound_to_name(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        token = codec.encode("session-a", "42")

        with pytest.raises(CodecError, match="not issued"):
            codec.decode("session-b", token)

    def test_tampered_token_is_rejected(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        token = codec.encode("s", "42")
        tampered = token[:-6] + ("A" if token[-6] != "A" else "B") + token[-5:]

        with pytest.raises(CodecError):
            codec.decode("s", tampered)

    @pytest.mark.parametrize("token", ["", "not-a-token", "gAAAAA====", "café"])
    def test_garbage_is_rejected(self, token):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)

        with pytest.raises(CodecError):
            codec.decode("s", token)

    def test_tuples_and_non_string_keys_keep_their_types(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        values = {1: "one", "t": (1, 2), "nested": {(0, 1): [("a",)], None: True}}

        decoded = codec.decode("s", codec.encode("s", values))

        assert decoded == values
        assert isinstance(decoded["t"], tuple)
        assert 1 in decoded and "1" not in decoded
        assert isinstance(decoded["nested"][(0, 1)][0], tuple)

    @pytest.mark.parametrize("key", ["__datetime__", "__tuple__", "__map__"])
    def test_maps_that_look_like_tags_are_kept(self, key):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)
        values = {"v": {key: [1, 2]}}

        assert codec.decode("s", codec.encode("s", values)) == values

    @pytest.mark.parametrize("value", [{1, 2}, b"raw", float("nan")])
    def test_values_json_cannot_carry_are_rejected(self, value):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)

        with pytest.raises(CodecError, match="cannot be encoded"):
            codec.encode("s", {"v": value})

    def test_old_token_fails_age_check_unless_skipped(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY, max_age=60)
        with patch("cryptography.fernet.time.time", return_value=time.time() - 3600):
            token = codec.encode("s", {"user": "alice"})

        with pytest.raises(CodecError):
            codec.decode("s", token)
        assert codec.decode("s", token, check_age=False) == {"user": "alice"}

    def test_unserializable_value_raises(self):
        codec = SecureCookieCodec(HASH_KEY, BLOCK_KEY)

        with pytest.raises(CodecError, match="cannot be encoded"):
            codec.encode("s", {"bad": object()})

    def test_different_keys_do_not_interoperate(self):
        token = SecureCookieCodec(HASH_KEY, BLOCK_KEY).encode("s", "1")

        with pytest.raises(CodecError):
            SecureCookieCodec(OLD_HASH_KEY, OLD_BLOCK_KEY).decode("s", token)

    def test_block_key_is_optional(self):
        codec = SecureCookieCodec(HASH_KEY)

        assert codec.decode("s", codec.encode("s", "1")) == "1"

    def test_empty_hash_key_is_rejected(self):
        with pytest.raises(StoreConfigurationError):
            SecureCookieCodec(b"")


class TestMultiCodec:
    """Test encode_multi/decode_multi with rotated keys"""

    def test_codecs_from_pairs_keeps_order(self):
        codecs = codecs_from_pairs((HASH_KEY, BLOCK_KEY), OLD_HASH_KEY, max_age=60)

        assert len(codecs) == 2
        assert all(codec.max_age == 60 for codec in codecs)

    def test_codecs_from_pairs_requires_a_pair(self):
        with pytest.raises(StoreConfigurationError):
            codecs_from_pairs()

    def test_encode_uses_first_codec(self):
        primary, old = codecs_from_pairs((HASH_KEY, BLOCK_KEY), (OLD_HASH_KEY, OLD_BLOCK_KEY))

        token = encode_multi("s", "7", [primary, old])

        assert primary.decode("s", token) == "7"
        with pytest.raises(CodecError):
            old.decode("s", token)

    def test_decode_falls_back_to_rotated_key(self):
        primary, old = codecs_from_pairs((HASH_KEY, BLOCK_KEY), (OLD_HASH_KEY, OLD_BLOCK_KEY))
        legacy_token = old.encode("s", "7")

        assert decode_multi("s", legacy_token, [primary, old]) == "7"

    def test_decode_collects_every_failure(self):
        primary, old = codecs_from_pairs((HASH_KEY, BLOCK_KEY), (OLD_HASH_KEY, OLD_BLOCK_KEY))

        with pytest.raises(MultiCodecError) as exc_info:
            decode_multi("s", "forged", [primary, old])

        assert len(exc_info.value.errors) == 2

    def test_encode_without_codecs_fails(self):
        with pytest.raises(CodecError):
            encode_multi("s", "7", [])
