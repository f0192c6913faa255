"""
Exception hierarchy for the session store.

Load-time failures (not found, expired, bad cookie) are raised internally and
converted into a fresh session by the lifecycle controller. Write failures
always reach the caller.
"""

from typing import Sequence


class SessionStoreError(Exception):
    """Base class for every error raised by postgrestore."""
    pass


class StoreConfigurationError(SessionStoreError):
    """Raised when the store cannot be constructed (connection, statements, table)."""
    pass


class StoreClosedError(SessionStoreError):
    """Raised when an operation is attempted after close()."""
    pass


class RecordNotFoundError(SessionStoreError):
    """Raised when no session row matches the requested id."""

    def __init__(self, session_id: int):
        super().__init__(f"No session record with id {session_id}")
        self.session_id = session_id


class SessionExpiredError(SessionStoreError):
    """Raised when a session row exists but its expires_on has passed."""
    pass


class SessionStorageError(SessionStoreError):
    """Raised when an insert, update, delete or select fails in the database."""
    pass


class SessionStateError(SessionStoreError):
    """Raised on an illegal session state transition."""
    pass


class InvalidExpiryError(SessionStoreError, TypeError):
    """Raised when the expires_on override is not a datetime."""
    pass


class CodecError(SessionStoreError):
    """Raised when a value cannot be encoded, or a token fails authentication or parsing."""
    pass


class MultiCodecError(CodecError):
    """Collects the errors of every codec tried by a multi-codec decode."""

    def __init__(self, errors: Sequence[CodecError]):
        self.errors = list(errors)
        detail = "; ".join(str(e) for e in self.errors) or "no codecs configured"
        super().__init__(f"All codecs failed: {detail}")
