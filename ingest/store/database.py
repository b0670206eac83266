"""SQLite event store on SQLAlchemy's asyncio engine (aiosqlite driver)."""
from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path
from typing import AsyncIterator

import structlog
from sqlalchemy import event, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from ..errors import InsertFailed, SchemaBootstrapError
from .schema import EVENT_COLUMNS, metadata

log = structlog.get_logger()

_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def _apply_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in _PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


class EventStore:
    """
    Handle to the durable event store.

    SQLite allows a single writer, so the engine holds exactly one pooled
    connection; concurrent callers queue on the pool and the engine's
    transactions order their writes. The store refuses writes until
    `bootstrap()` has succeeded.
    """

    def __init__(self, db_path: str | Path, pool_timeout: float = 30.0):
        self.db_path = Path(db_path)
        self._pool_timeout = pool_timeout
        self._engine: AsyncEngine | None = None
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    def _create_engine(self) -> AsyncEngine:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{self.db_path}",
            echo=False,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=self._pool_timeout,
            connect_args={"timeout": 30.0},
        )
        event.listen(engine.sync_engine, "connect", _apply_pragmas)
        return engine

    async def bootstrap(self, timeout: float | None = None) -> None:
        """
        Create the events table and indexes if missing, then verify its columns.

        Idempotent: existing tables and rows are left untouched.

        Raises:
            SchemaBootstrapError: If the store cannot be opened or verified
        """
        try:
            await asyncio.wait_for(self._bootstrap(), timeout)
        except SchemaBootstrapError:
            self._ready = False
            raise
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
            self._ready = False
            log.error("store.bootstrap_failed", db_path=str(self.db_path), error=str(exc))
            raise SchemaBootstrapError(f"apply schema: {exc}") from exc
        self._ready = True
        log.info("store.bootstrapped", db_path=str(self.db_path))

    async def _bootstrap(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
            columns = await conn.run_sync(
                lambda sync_conn: {col["name"] for col in inspect(sync_conn).get_columns("events")}
            )
        missing = EVENT_COLUMNS - columns
        if missing:
            log.error("store.schema_mismatch", missing=sorted(missing))
            raise SchemaBootstrapError(f"events table is missing columns: {sorted(missing)}")

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """Open one atomic unit of work; commits on exit, rolls back on error."""
        if not self._ready:
            log.error("store.not_ready", db_path=str(self.db_path))
            raise InsertFailed("store is not initialized")
        async with self.engine.begin() as conn:
            yield conn

    async def ping(self, timeout: float | None = None) -> None:
        """Round-trip a trivial query; raises on failure or deadline expiry."""
        async def _ping() -> None:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        await asyncio.wait_for(_ping(), timeout)

    async def close(self) -> None:
        self._ready = False
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        log.info("store.closed", db_path=str(self.db_path))
