"""
In-memory session objects and the per-request registry.

A session lives for one request. Its state moves NEW -> PERSISTED -> DELETED
and only the lifecycle controller drives those transitions.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, Tuple

from starlette.requests import Request
from starlette.responses import Response

from postgrestore.core.errors import SessionStateError

if TYPE_CHECKING:
    from postgrestore.store import PGStore

logger = logging.getLogger(__name__)

# Keys injected on load for caller visibility; never part of the stored payload
CREATED_ON = "created_on"
MODIFIED_ON = "modified_on"
EXPIRES_ON = "expires_on"
RESERVED_KEYS = (CREATED_ON, MODIFIED_ON, EXPIRES_ON)


class SessionState(str, Enum):
    NEW = "new"
    PERSISTED = "persisted"
    DELETED = "deleted"


@dataclass
class SessionOptions:
    """Cookie attributes for one session; max_age < 0 means delete."""

    path: str = "/"
    max_age: int = 86400 * 30
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = True
    samesite: Optional[str] = "lax"

    def copy(self) -> "SessionOptions":
        return copy.copy(self)


@dataclass
class Session:
    name: str
    options: SessionOptions
    store: Optional["PGStore"] = None
    values: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    state: SessionState = SessionState.NEW

    @property
    def is_new(self) -> bool:
        return self.state is SessionState.NEW

    def mark_persisted(self, session_id: str) -> None:
        if not session_id:
            raise SessionStateError("a persisted session needs an id")
        if self.state is SessionState.DELETED:
            raise SessionStateError("a deleted session cannot be persisted again")
        self.id = session_id
        self.state = SessionState.PERSISTED

    def mark_deleted(self) -> None:
        self.values.clear()
        self.state = SessionState.DELETED

    def save(self, request: Request, response: Response) -> None:
        """Persist this session through the store that created it."""
        if self.store is None:
            raise SessionStateError(f"session {self.name!r} is not bound to a store")
        self.store.save(request, response, self)


class SessionRegistry(Protocol):
    """Per-request cache: one session object per name."""

    def get(self, store: "PGStore", name: str) -> Session:
        ...


class RequestRegistry:
    """Default registry, kept on ``request.state`` for the life of the request."""

    def __init__(self, request: Request):
        self.request = request
        self._sessions: Dict[str, Tuple[Session, "PGStore"]] = {}

    def get(self, store: "PGStore", name: str) -> Session:
        """Return the cached session for ``name``, loading it on first use."""
        cached = self._sessions.get(name)
        if cached is not None:
            return cached[0]
        session = store.new(self.request, name)
        self._sessions[name] = (session, store)
        return session

    def save_all(self, response: Response) -> None:
        """Save every session obtained through this registry."""
        for name, (session, store) in self._sessions.items():
            if session.state is SessionState.DELETED:
                continue
            logger.debug(f"Saving registered session {name!r}")
            store.save(self.request, response, session)


def get_registry(request: Request) -> RequestRegistry:
    """Return the registry attached to ``request``, creating it if needed."""
    registry = getattr(request.state, "session_registry", None)
    if registry is None:
        registry = RequestRegistry(request)
        request.state.session_registry = registry
    return registry
