from contextlib import contextmanager
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Requests are served from a thread pool; share the connection across threads
        return {"check_same_thread": False}
    # PostgreSQL and other databases don't need special args
    return {}


def create_store_engine(database_url: str) -> Engine:
    """Create the engine shared by every request for the lifetime of a store"""
    return create_engine(
        database_url,
        connect_args=get_connect_args(database_url),
        pool_pre_ping=not database_url.startswith("sqlite"),
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_sync(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Get a synchronous DB session with proper resource management"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
