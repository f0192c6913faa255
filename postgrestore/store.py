"""
PostgreSQL-backed session store.

The store keeps session values in the ``http_sessions`` table and hands the
client a cookie that holds nothing but the sealed row id. A forged, corrupted
or stale cookie never raises: the request just gets a brand-new session. Only
storage failures, encoding defects and stored payloads that no configured key
can open reach the caller.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request
from starlette.responses import Response

from postgrestore.core.codecs import DEFAULT_MAX_AGE, Codec, KeyPair, codecs_from_pairs
from postgrestore.core.config import Settings
from postgrestore.core.cookies import CookieBinder
from postgrestore.core.errors import StoreClosedError, StoreConfigurationError
from postgrestore.core.lifecycle import Clock, SessionLifecycle, utc_now
from postgrestore.core.logging_config import init_logging
from postgrestore.core.sessions import Session, SessionOptions, SessionRegistry, get_registry
from postgrestore.db.record_store import RecordStore
from postgrestore.db.session import create_store_engine

logger = logging.getLogger(__name__)


class PGStore:
    """
    Session store facade: Get, New, Save and Delete over one shared engine.

    Args:
        database_url: SQLAlchemy URL of the session database
        path: Default cookie path
        max_age: Default session lifetime in seconds
        *key_pairs: ``(hash_key, block_key)`` tuples or bare hash keys; the
            first encodes, all are tried when decoding
        codecs: Ready-made codecs, used instead of ``key_pairs``
        clock: Source of "now" (timezone-aware)
        registry_factory: Returns the per-request registry for a request
    """

    def __init__(
        self,
        database_url: str,
        path: str = "/",
        max_age: int = DEFAULT_MAX_AGE,
        *key_pairs: KeyPair,
        codecs: Optional[Sequence[Codec]] = None,
        clock: Clock = utc_now,
        registry_factory: Callable[[Request], SessionRegistry] = get_registry,
        options: Optional[SessionOptions] = None,
    ):
        self.codecs = list(codecs) if codecs else codecs_from_pairs(
            *key_pairs, max_age=max_age if max_age > 0 else DEFAULT_MAX_AGE
        )
        self.options = options.copy() if options else SessionOptions()
        self.options.path = path
        self.options.max_age = max_age
        self._registry_factory = registry_factory

        try:
            engine = create_store_engine(database_url)
        except (SQLAlchemyError, ImportError) as e:
            raise StoreConfigurationError(f"Unable to open session database: {e}") from e

        try:
            self._records = RecordStore(engine)
            self._records.ensure_table()
        except StoreConfigurationError:
            engine.dispose()
            raise

        self._lifecycle = SessionLifecycle(self._records, self.codecs, clock=clock)
        self._cookies = CookieBinder(self.codecs)
        logger.debug("Session store ready", extra={"path": path, "max_age": max_age})

    @classmethod
    def from_settings(cls, config: Settings, configure_logging: bool = False,
                      **kwargs: Any) -> "PGStore":
        """
        Build a store from a Settings instance.

        Args:
            config: Store settings
            configure_logging: Also set up the ``postgrestore`` loggers from ``config``
            **kwargs: Passed through to the constructor
        """
        if configure_logging:
            init_logging(config)
        key_pairs = config.key_pairs()
        if not key_pairs and "codecs" not in kwargs:
            raise StoreConfigurationError("POSTGRESTORE_KEY_PAIRS is not configured")
        options = SessionOptions(
            domain=config.COOKIE_DOMAIN,
            secure=config.COOKIE_SECURE,
            httponly=config.COOKIE_HTTPONLY,
            samesite=config.COOKIE_SAMESITE,
        )
        kwargs.setdefault("options", options)
        return cls(config.DATABASE_URL, config.COOKIE_PATH, config.MAX_AGE, *key_pairs, **kwargs)

    def _ensure_open(self) -> None:
        if self._records.closed:
            raise StoreClosedError("session store has been closed")

    def get(self, request: Request, name: str) -> Session:
        """Return the request's session for ``name``, loading it once per request."""
        self._ensure_open()
        return self._registry_factory(request).get(self, name)

    def new(self, request: Request, name: str) -> Session:
        """
        Return a session for ``name`` without registering it.

        The session is loaded from the database when the request carries an
        authentic cookie for a live record; otherwise it is NEW and empty.
        """
        self._ensure_open()
        session = self._lifecycle.new(name, self.options, store=self)
        session_id = self._cookies.read_id(request, name)
        if session_id is not None:
            self._lifecycle.load(session, session_id)
        return session

    def save(self, request: Request, response: Response, session: Session) -> None:
        """
        Insert or update the session row and bind its id to the response cookie.

        A session whose max_age is negative is deleted instead.
        """
        self._ensure_open()
        if session.options.max_age < 0:
            self.delete(response, session)
            return
        self._lifecycle.save(session)
        self._cookies.bind(response, session)

    def delete(self, response: Response, session: Session) -> None:
        """Expire the client cookie, clear the session values and remove the row."""
        self._ensure_open()
        self._cookies.expire(response, session)
        self._lifecycle.delete(session)

    def purge_expired(self) -> int:
        """Delete every expired row; returns how many were removed."""
        self._ensure_open()
        return self._lifecycle.purge_expired()

    def set_max_age(self, max_age: int) -> None:
        """Change the default session lifetime and the codecs' authentication window."""
        self.options.max_age = max_age
        for codec in self.codecs:
            codec.max_age = max_age

    def close(self) -> None:
        """Release the database connection pool. Later operations raise StoreClosedError."""
        if self._records.closed:
            return
        self._records.close()
        logger.info("Session store closed")

    def __enter__(self) -> "PGStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
