"""FastAPI integration: inject the request's session into route handlers."""

from typing import Callable

from fastapi import Request

from postgrestore.core.sessions import Session
from postgrestore.store import PGStore


def session_dependency(store: PGStore, name: str) -> Callable[[Request], Session]:
    """
    Build a dependency that returns the registered session called ``name``.

    Usage:
        current_session = session_dependency(store, "sid")

        @app.get("/")
        def index(session: Session = Depends(current_session)): ...
    """

    def _get_session(request: Request) -> Session:
        return store.get(request, name)

    return _get_session
