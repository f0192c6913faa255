"""
Authenticated encoding of session values and ids.

Each codec binds a value to a name and seals it with Fernet (AES-CBC plus
HMAC-SHA256), so a token minted for one cookie name is rejected under
another. Multiple codecs support key rotation: encoding always uses the
first, decoding tries each in order.
"""

import base64
import json
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from postgrestore.core.errors import CodecError, MultiCodecError, StoreConfigurationError

# Default authentication window for tokens, in seconds (30 days)
DEFAULT_MAX_AGE = 86400 * 30

_DATETIME_TAG = "__datetime__"
_TUPLE_TAG = "__tuple__"
_MAP_TAG = "__map__"
_TAGS = (_DATETIME_TAG, _TUPLE_TAG, _MAP_TAG)

KeyPair = Union[bytes, Tuple[bytes, Optional[bytes]]]


class Codec(Protocol):
    """Anything that can seal a value under a name and open it again."""

    max_age: int

    def encode(self, name: str, value: Any) -> str:
        ...

    def decode(self, name: str, token: str, check_age: bool = True) -> Any:
        ...


def _pack(obj: Any) -> Any:
    """Tag the values JSON would silently reshape (tuples, non-str keys, datetimes)."""
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return {_DATETIME_TAG: obj.isoformat()}
    if isinstance(obj, tuple):
        return {_TUPLE_TAG: [_pack(item) for item in obj]}
    if isinstance(obj, list):
        return [_pack(item) for item in obj]
    if isinstance(obj, dict):
        plain = all(isinstance(key, str) for key in obj)
        if plain and not (len(obj) == 1 and next(iter(obj)) in _TAGS):
            return {key: _pack(value) for key, value in obj.items()}
        return {_MAP_TAG: [[_pack(key), _pack(value)] for key, value in obj.items()]}
    return obj


def _unpack(obj: dict) -> Any:
    if len(obj) == 1:
        if _DATETIME_TAG in obj:
            return datetime.fromisoformat(obj[_DATETIME_TAG])
        if _TUPLE_TAG in obj:
            return tuple(obj[_TUPLE_TAG])
        if _MAP_TAG in obj:
            return {key: value for key, value in obj[_MAP_TAG]}
    return obj


class SecureCookieCodec:
    """Fernet codec keyed from a (hash_key, block_key) pair."""

    def __init__(self, hash_key: bytes, block_key: Optional[bytes] = None,
                 max_age: int = DEFAULT_MAX_AGE):
        if not hash_key:
            raise StoreConfigurationError("hash key must not be empty")
        self.max_age = max_age
        self._fernet = Fernet(self._derive_key(hash_key, block_key))

    @staticmethod
    def _derive_key(hash_key: bytes, block_key: Optional[bytes]) -> bytes:
        """Derive a Fernet key: 16 signing bytes from the hash key, 16 encryption bytes from the block key."""
        signing = HKDF(
            algorithm=hashes.SHA256(),
            length=16,
            salt=None,
            info=b"postgrestore-signing",
        ).derive(hash_key)
        encryption = HKDF(
            algorithm=hashes.SHA256(),
            length=16,
            salt=None,
            info=b"postgrestore-encryption",
        ).derive(block_key or hash_key)
        return base64.urlsafe_b64encode(signing + encryption)

    def encode(self, name: str, value: Any) -> str:
        """
        Serialize and seal a value for the given name.

        Raises:
            CodecError: If the value cannot be serialized
        """
        try:
            plaintext = json.dumps(
                {"name": name, "value": _pack(value)},
                allow_nan=False,
                separators=(",", ":"),
            )
        except (TypeError, ValueError, RecursionError) as e:
            raise CodecError(f"Value for {name!r} cannot be encoded: {e}") from e
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decode(self, name: str, token: str, check_age: bool = True) -> Any:
        """
        Authenticate a token and return the value sealed under the given name.

        With ``check_age`` false the token is authenticated but its age is
        not checked against ``max_age``.

        Raises:
            CodecError: If the token is malformed, tampered, too old or minted for another name
        """
        try:
            raw = token.encode("ascii")
        except (AttributeError, UnicodeEncodeError) as e:
            raise CodecError("token is not an ASCII string") from e

        ttl = self.max_age if check_age and self.max_age > 0 else None
        try:
            plaintext = self._fernet.decrypt(raw, ttl=ttl)
        except InvalidToken as e:
            raise CodecError("token failed authentication") from e

        try:
            envelope = json.loads(plaintext.decode("utf-8"), object_hook=_unpack)
        except ValueError as e:
            raise CodecError("token payload is not valid JSON") from e

        if not isinstance(envelope, dict) or envelope.get("name") != name:
            raise CodecError(f"token was not issued for {name!r}")
        return envelope.get("value")


def codecs_from_pairs(*key_pairs: KeyPair, max_age: int = DEFAULT_MAX_AGE) -> List[SecureCookieCodec]:
    """
    Build one codec per key pair, in order.

    Each pair is either a ``(hash_key, block_key)`` tuple or a bare hash key.
    """
    if not key_pairs:
        raise StoreConfigurationError("at least one key pair is required")
    codecs = []
    for pair in key_pairs:
        if isinstance(pair, tuple):
            hash_key, block_key = pair
        else:
            hash_key, block_key = pair, None
        codecs.append(SecureCookieCodec(hash_key, block_key, max_age=max_age))
    return codecs


def encode_multi(name: str, value: Any, codecs: Sequence[Codec]) -> str:
    """Encode with the primary (first) codec."""
    if not codecs:
        raise CodecError("no codecs configured")
    return codecs[0].encode(name, value)


def decode_multi(name: str, token: str, codecs: Iterable[Codec], check_age: bool = True) -> Any:
    """
    Decode with each codec in order, returning the first success.

    Raises:
        MultiCodecError: If no codec accepts the token
    """
    errors = []
    for codec in codecs:
        try:
            return codec.decode(name, token, check_age=check_age)
        except CodecError as e:
            errors.append(e)
    raise MultiCodecError(errors)
