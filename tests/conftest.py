"""
Shared fixtures for ThreadACL tests.

Every test gets a fresh SQLite file in a temporary directory and a fresh
in-memory cache.
"""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from threadacl.cache import InMemoryCache
from threadacl.services import AuthorizationService
from threadacl.store import Database


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def db_path(data_dir):
    return str(Path(data_dir) / "threadacl.db")


@pytest_asyncio.fixture
async def db(db_path):
    """Initialized database."""
    database = Database(db_path, wal_mode=False)
    await database.initialize()
    return database


@pytest_asyncio.fixture
async def cache():
    """Connected in-memory cache."""
    backend = InMemoryCache()
    await backend.connect()
    yield backend
    await backend.close()


@pytest_asyncio.fixture
async def service(db, cache):
    """Authorization service over the temporary database and memory cache."""
    return AuthorizationService(db, cache)
