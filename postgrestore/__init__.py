"""Server-side web sessions stored in a relational table, keyed by an authenticated cookie."""

from postgrestore.core.codecs import SecureCookieCodec, codecs_from_pairs, decode_multi, encode_multi
from postgrestore.core.errors import (
    CodecError,
    InvalidExpiryError,
    MultiCodecError,
    SessionStateError,
    SessionStorageError,
    SessionStoreError,
    StoreClosedError,
    StoreConfigurationError,
)
from postgrestore.core.sessions import (
    RESERVED_KEYS,
    RequestRegistry,
    Session,
    SessionOptions,
    SessionState,
    get_registry,
)
from postgrestore.store import PGStore

__all__ = [
    "PGStore",
    "Session",
    "SessionOptions",
    "SessionState",
    "RequestRegistry",
    "get_registry",
    "RESERVED_KEYS",
    "SecureCookieCodec",
    "codecs_from_pairs",
    "encode_multi",
    "decode_multi",
    "SessionStoreError",
    "StoreConfigurationError",
    "StoreClosedError",
    "SessionStorageError",
    "SessionStateError",
    "InvalidExpiryError",
    "CodecError",
    "MultiCodecError",
]
