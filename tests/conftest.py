"""Shared fixtures: an isolated SQLite store and HTTP client per test."""
import sqlite3

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import select

from ingest.config import Settings
from ingest.main import create_app
from ingest.store import EventStore, events


@pytest_asyncio.fixture
async def store(tmp_path):
    """Bootstrapped store on a fresh database file."""
    event_store = EventStore(tmp_path / "data" / "telemetry.db")
    await event_store.bootstrap()
    yield event_store
    await event_store.close()


@pytest.fixture
def fetch_rows():
    """Return a coroutine function reading all stored rows ordered by id."""

    async def _fetch(event_store: EventStore) -> list[dict]:
        async with event_store.engine.connect() as conn:
            result = await conn.execute(select(events).order_by(events.c.id))
            return [dict(row._mapping) for row in result]

    return _fetch


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "telemetry.db"


@pytest.fixture
def settings(db_path):
    return Settings(DB_PATH=str(db_path), LOG_JSON=False)


@pytest.fixture
def client(settings):
    """HTTP client with the lifespan (store bootstrap) running."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def read_rows(db_path):
    """Read stored rows straight from the database file."""

    def _read() -> list[dict]:
        conn = sqlite3.connect(db_path)
        conn.row_factory = sqlite3.Row
        try:
            return [dict(row) for row in conn.execute("SELECT * FROM events ORDER BY id")]
        finally:
            conn.close()

    return _read
