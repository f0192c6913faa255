"""
Session lifecycle: translation between stored records and in-memory sessions.

Load never fails for an unknown or expired record; the session is simply left
NEW. A stored payload that no codec can open points at a key problem and is
raised. Save inserts on first write and updates afterwards. Reserved timestamp
keys are visible to callers after a load but never stored in the payload.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Sequence

from postgrestore.core.codecs import Codec, decode_multi, encode_multi
from postgrestore.core.errors import (
    CodecError,
    InvalidExpiryError,
    RecordNotFoundError,
    SessionExpiredError,
    SessionStateError,
)
from postgrestore.core.sessions import (
    CREATED_ON,
    EXPIRES_ON,
    MODIFIED_ON,
    RESERVED_KEYS,
    Session,
    SessionOptions,
    SessionState,
)
from postgrestore.db.record_store import RecordStore

if TYPE_CHECKING:
    from postgrestore.store import PGStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def strip_reserved(values: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``values`` without the reserved timestamp keys."""
    return {k: v for k, v in values.items() if k not in RESERVED_KEYS}


class SessionLifecycle:
    """Drives sessions through NEW, PERSISTED and DELETED against a record store."""

    def __init__(self, records: RecordStore, codecs: Sequence[Codec], clock: Clock = utc_now):
        self._records = records
        self._codecs = codecs
        self._clock = clock

    def now(self) -> datetime:
        """Current time in UTC; a naive clock reading is taken as UTC."""
        current = self._clock()
        if current.tzinfo is None:
            return current.replace(tzinfo=timezone.utc)
        return current.astimezone(timezone.utc)

    def new(self, name: str, options: SessionOptions, store: Optional["PGStore"] = None) -> Session:
        """Build an empty NEW session; storage is not touched."""
        return Session(name=name, options=options.copy(), store=store)

    def load(self, session: Session, session_id: str) -> Session:
        """
        Fill ``session`` from the record with the given id.

        A missing or expired record leaves the session NEW and empty.

        Raises:
            CodecError: If the stored payload cannot be opened with any codec
            SessionStorageError: If the query fails
        """
        try:
            record_id = int(session_id)
        except ValueError:
            logger.warning("Ignoring session id that is not a record id")
            return session

        try:
            self._load_record(session, record_id)
        except RecordNotFoundError:
            logger.info(f"No session record {record_id}; starting a new session")
        except SessionExpiredError as e:
            logger.info(str(e))
        except CodecError as e:
            logger.error(
                f"Session record {record_id} could not be decoded; check the configured keys",
                extra={"error_type": type(e).__name__},
            )
            raise
        return session

    def _load_record(self, session: Session, record_id: int) -> None:
        record = self._records.select_by_id(record_id)

        now = self.now()
        if record.expires_on is None or not record.expires_on > now:
            raise SessionExpiredError(f"Session expired on {record.expires_on}, but it is {now} now.")

        try:
            token = record.data.decode("ascii")
        except UnicodeDecodeError as e:
            raise CodecError("stored payload is not a codec token") from e
        values = decode_multi(session.name, token, self._codecs, check_age=False)
        if not isinstance(values, dict):
            raise CodecError("stored payload is not a value map")

        values[CREATED_ON] = record.created_on
        values[MODIFIED_ON] = record.modified_on
        values[EXPIRES_ON] = record.expires_on
        session.values = values
        session.mark_persisted(str(record_id))

    def save(self, session: Session) -> None:
        """Insert a NEW session or update a PERSISTED one."""
        if session.state is SessionState.DELETED:
            raise SessionStateError(f"session {session.name!r} was deleted and cannot be saved")
        if session.is_new:
            self._insert(session)
        else:
            self._update(session)

    def _resolve_expiry(self, session: Session, now: datetime) -> datetime:
        override = session.values.get(EXPIRES_ON)
        if override is None:
            return now + timedelta(seconds=session.options.max_age)
        if not isinstance(override, datetime):
            raise InvalidExpiryError(
                f"{EXPIRES_ON} must be a datetime, got {type(override).__name__}"
            )
        if override.tzinfo is None:
            override = override.replace(tzinfo=timezone.utc)
        return override.astimezone(timezone.utc)

    def _insert(self, session: Session) -> None:
        # created_on is set here and nowhere else
        now = self.now()
        expires_on = self._resolve_expiry(session, now)
        values = strip_reserved(session.values)
        payload = encode_multi(session.name, values, self._codecs).encode("ascii")

        record_id = self._records.insert(payload, now, now, expires_on)

        session.values = values
        session.mark_persisted(str(record_id))
        logger.debug(f"Inserted session record {record_id}")

    def _update(self, session: Session) -> None:
        # created_on and expires_on are never rewritten
        payload = encode_multi(session.name, strip_reserved(session.values), self._codecs).encode("ascii")
        rows = self._records.update(payload, self.now(), int(session.id))
        if rows == 0:
            logger.warning(f"Session record {session.id} no longer exists; update matched no rows")

    def delete(self, session: Session) -> None:
        """Clear the session's values and remove its record, if it has one."""
        session_id = session.id
        session.mark_deleted()
        if session_id is not None:
            self._records.delete_by_id(int(session_id))

    def purge_expired(self) -> int:
        removed = self._records.delete_expired(self.now())
        if removed:
            logger.info(f"Purged {removed} expired session records")
        return removed
