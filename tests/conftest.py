"""
Global test configuration and fixtures for postgrestore

Each test gets its own SQLite database file, a fixed pair of keys and a
clock it can move forward.
"""

import pytest

from postgrestore.core.codecs import codecs_from_pairs
from postgrestore.store import PGStore
from utils.helpers import BLOCK_KEY, HASH_KEY, OLD_BLOCK_KEY, OLD_HASH_KEY, FrozenClock


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def database_url(tmp_path):
    """URL of a throwaway SQLite database"""
    return f"sqlite:///{tmp_path / 'sessions.db'}"


@pytest.fixture(scope="function")
def clock():
    return FrozenClock()


@pytest.fixture(scope="function")
def store(database_url, clock):
    """Store with a 10 second max-age; closed on teardown"""
    session_store = PGStore(database_url, "/", 10, (HASH_KEY, BLOCK_KEY), clock=clock)
    yield session_store
    session_store.close()


# ============================================================================
# Codec Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def codecs():
    return codecs_from_pairs((HASH_KEY, BLOCK_KEY))


@pytest.fixture(scope="function")
def old_codecs():
    return codecs_from_pairs((OLD_HASH_KEY, OLD_BLOCK_KEY))
