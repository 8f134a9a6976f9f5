"""Client-server engine: a bounded pool of async connections (SQLAlchemy AsyncEngine).

Templates are rewritten from `?` to numbered bind parameters before dispatch,
and INSERTs get `RETURNING id` so the new key comes back with the row. Outside
a transaction every statement checks out a connection, runs in its own
transaction and gives the connection back. A transaction pins one connection
until it ends, whatever the outcome.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from canvass.db.base import Row, RunResult, StatementAdapter
from canvass.db.errors import DatabaseError, DatabaseNotInitializedError
from canvass.db.sqltext import bind_params, is_insert, number_placeholders, split_script, with_returning

logger = logging.getLogger(__name__)


def compile_template(sql: str, params: tuple) -> tuple[Any, dict[str, Any]]:
    numbered, count = number_placeholders(sql)
    if count != len(params):
        raise ArgumentError(f"statement has {count} placeholder(s) but {len(params)} parameter(s) were given: {sql!r}")
    return text(numbered), bind_params(params)


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    cur = dbapi_connection.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


async def _fetch_one(conn: AsyncConnection, sql: str, params: tuple) -> Row | None:
    stmt, binds = compile_template(sql, params)
    result = await conn.execute(stmt, binds)
    row = result.mappings().first()
    return dict(row) if row is not None else None


async def _fetch_all(conn: AsyncConnection, sql: str, params: tuple) -> list[Row]:
    stmt, binds = compile_template(sql, params)
    result = await conn.execute(stmt, binds)
    return [dict(row) for row in result.mappings().all()]


async def _execute(conn: AsyncConnection, sql: str, params: tuple) -> RunResult:
    sql = with_returning(sql)
    stmt, binds = compile_template(sql, params)
    result = await conn.execute(stmt, binds)
    if result.returns_rows:
        rows = result.all()
        inserted_id = rows[0][0] if rows and is_insert(sql) else None
        return RunResult(inserted_id=inserted_id, affected=len(rows))
    return RunResult(inserted_id=None, affected=result.rowcount)


async def _exec(conn: AsyncConnection, script: str) -> None:
    for stmt in split_script(script):
        await conn.exec_driver_sql(stmt)


class PooledAdapter(StatementAdapter):
    def __init__(
        self,
        url: str,
        pool_size: int = 10,
        pool_timeout: float = 10.0,
        statement_timeout_ms: int | None = None,
    ):
        self.url = make_url(url)
        self.dialect = self.url.get_backend_name()
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self.statement_timeout_ms = statement_timeout_ms
        self._engine: AsyncEngine | None = None

    async def initialize(self) -> None:
        if self._engine is not None:
            return
        connect_args = {}
        if self.dialect == "postgresql" and self.statement_timeout_ms:
            connect_args["options"] = f"-c statement_timeout={int(self.statement_timeout_ms)}"

        engine = create_async_engine(
            self.url,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=self.pool_size,
            max_overflow=0,
            pool_timeout=self.pool_timeout,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        if self.dialect == "sqlite":
            event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        self._engine = engine
        logger.info(
            "Connection pool ready: %s (size=%d, timeout=%.1fs)",
            self.url.render_as_string(hide_password=True), self.pool_size, self.pool_timeout,
        )

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise DatabaseNotInitializedError("connection pool is not open; call initialize() first")
        return self._engine

    async def fetch_one(self, sql: str, params: tuple) -> Row | None:
        async with self._require_engine().begin() as conn:
            return await _fetch_one(conn, sql, params)

    async def fetch_all(self, sql: str, params: tuple) -> list[Row]:
        async with self._require_engine().begin() as conn:
            return await _fetch_all(conn, sql, params)

    async def execute(self, sql: str, params: tuple) -> RunResult:
        async with self._require_engine().begin() as conn:
            return await _execute(conn, sql, params)

    async def exec(self, script: str) -> None:
        async with self._require_engine().begin() as conn:
            await _exec(conn, script)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["PooledTransaction"]:
        # connect() returns the connection to the pool on exit, begin() commits or rolls back
        async with self._require_engine().connect() as conn:
            async with conn.begin():
                tx = PooledTransaction(conn, self.dialect)
                try:
                    yield tx
                finally:
                    tx.close()

    async def shutdown(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        logger.info("Connection pool closed")


class PooledTransaction(StatementAdapter):
    """Adapter bound to the single connection of a running transaction."""

    def __init__(self, conn: AsyncConnection, dialect: str):
        self._conn = conn
        self.dialect = dialect
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def _connection(self) -> AsyncConnection:
        if self._closed:
            raise DatabaseError("transaction handle used after its transaction ended")
        return self._conn

    async def fetch_one(self, sql: str, params: tuple) -> Row | None:
        return await _fetch_one(self._connection(), sql, params)

    async def fetch_all(self, sql: str, params: tuple) -> list[Row]:
        return await _fetch_all(self._connection(), sql, params)

    async def execute(self, sql: str, params: tuple) -> RunResult:
        return await _execute(self._connection(), sql, params)

    async def exec(self, script: str) -> None:
        await _exec(self._connection(), script)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["PooledTransaction"]:
        self._connection()
        yield self

    async def shutdown(self) -> None:
        raise DatabaseError("cannot shut down the pool from inside a transaction")
