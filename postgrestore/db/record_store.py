"""Row-level access to the ``http_sessions`` table.

The record store owns the table and its statements (insert, update, select by
id, delete by id, delete expired). It knows nothing about cookies or codecs:
the payload arrives already sealed and timestamps arrive already computed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, NamedTuple, Optional

from sqlalchemy import bindparam, delete, insert, inspect, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from postgrestore.core.errors import (
    RecordNotFoundError,
    SessionStorageError,
    StoreClosedError,
    StoreConfigurationError,
)
from postgrestore.db.models import TABLE_NAME, HttpSession
from postgrestore.db.session import create_session_factory, get_db_sync

logger = logging.getLogger(__name__)


class SessionRecord(NamedTuple):
    data: bytes
    created_on: Optional[datetime]
    modified_on: Optional[datetime]
    expires_on: Optional[datetime]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class RecordStore:
    """Insert/update/select/delete against the session table, built once per store."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = create_session_factory(engine)
        self._closed = False

        table = HttpSession.__table__
        self._stmt_insert = insert(table)
        self._stmt_update = (
            update(table)
            .where(table.c.id == bindparam("b_id"))
            .values(data=bindparam("b_data"), modified_on=bindparam("b_modified_on"))
        )
        self._stmt_select = select(
            table.c.data, table.c.created_on, table.c.modified_on, table.c.expires_on
        ).where(table.c.id == bindparam("b_id"))
        self._stmt_delete = delete(table).where(table.c.id == bindparam("b_id"))
        self._stmt_delete_expired = delete(table).where(table.c.expires_on <= bindparam("b_now"))

        self._validate_statements()

    def _validate_statements(self) -> None:
        """
        Compile every statement once for the connected dialect.

        The compiled forms are discarded; SQLAlchemy caches compilation per
        engine on first execution. This only fails construction early when a
        statement cannot be rendered for the dialect.
        """
        try:
            for stmt in (self._stmt_insert, self._stmt_update, self._stmt_select,
                         self._stmt_delete, self._stmt_delete_expired):
                stmt.compile(dialect=self._engine.dialect)
        except SQLAlchemyError as e:
            raise StoreConfigurationError(
                f"Session statements cannot be compiled for this database: {e}"
            ) from e

    def ensure_table(self) -> bool:
        """
        Create the session table if it does not exist yet.

        Returns:
            True if the table was created, False if it already existed

        Raises:
            StoreConfigurationError: If the database is unreachable or the table cannot be created
        """
        try:
            exists = inspect(self._engine).has_table(TABLE_NAME)
        except SQLAlchemyError as e:
            raise StoreConfigurationError(f"Unable to connect to the session database: {e}") from e
        if exists:
            return False

        try:
            HttpSession.__table__.create(bind=self._engine, checkfirst=True)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create {TABLE_NAME} table: {e}")
            raise StoreConfigurationError(
                f"Unable to create {TABLE_NAME} table in the database: {e}"
            ) from e
        logger.info("Created session table", extra={"table": TABLE_NAME})
        return True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosedError("session store has been closed")

    def _execute(self, operation: str, stmt: Any, params: Dict[str, Any],
                 collect: Callable[[Any], Any] = lambda result: result.rowcount) -> Any:
        self._ensure_open()
        with get_db_sync(self._session_factory) as db:
            try:
                value = collect(db.execute(stmt, params))
                db.commit()
                return value
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    f"Session {operation} failed: {e}",
                    extra={"error_type": type(e).__name__},
                )
                raise SessionStorageError(f"Session {operation} failed: {e}") from e

    def insert(self, data: bytes, created_on: datetime, modified_on: datetime,
               expires_on: datetime) -> int:
        """Append a row and return its store-assigned id."""
        return self._execute("insert", self._stmt_insert, {
            "data": data,
            "created_on": created_on,
            "modified_on": modified_on,
            "expires_on": expires_on,
        }, collect=lambda result: int(result.inserted_primary_key[0]))

    def update(self, data: bytes, modified_on: datetime, session_id: int) -> int:
        """Overwrite data and modified_on; returns the number of rows touched."""
        return self._execute("update", self._stmt_update, {
            "b_data": data,
            "b_modified_on": modified_on,
            "b_id": session_id,
        })

    def delete_by_id(self, session_id: int) -> None:
        """Remove a row. A missing row is not an error."""
        self._execute("delete", self._stmt_delete, {"b_id": session_id})

    def delete_expired(self, now: datetime) -> int:
        """Remove every row whose expires_on is not after ``now``."""
        return self._execute("purge", self._stmt_delete_expired, {"b_now": now})

    def select_by_id(self, session_id: int) -> SessionRecord:
        """
        Fetch one row.

        Raises:
            RecordNotFoundError: If no row has the given id
            SessionStorageError: If the query fails
        """
        self._ensure_open()
        with get_db_sync(self._session_factory) as db:
            try:
                row = db.execute(self._stmt_select, {"b_id": session_id}).one_or_none()
            except SQLAlchemyError as e:
                logger.error(
                    f"Session select failed: {e}",
                    extra={"error_type": type(e).__name__},
                )
                raise SessionStorageError(f"Session select failed: {e}") from e

        if row is None:
            raise RecordNotFoundError(session_id)
        return SessionRecord(
            data=bytes(row.data or b""),
            created_on=as_utc(row.created_on),
            modified_on=as_utc(row.modified_on),
            expires_on=as_utc(row.expires_on),
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release pooled connections. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._engine.dispose()
        logger.debug("Session record store closed")
