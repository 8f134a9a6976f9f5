"""Embedded engine: an in-memory SQLite database backed by a snapshot file.

The whole dataset lives in one `:memory:` connection. At startup it is loaded
from the snapshot file (if present); `checkpoint()` serializes it back,
overwriting the file wholesale. Anything written after the last checkpoint is
lost if the process dies, so only one process may own a snapshot file.

Statements run synchronously inside the calling task. An `asyncio.Lock`
serializes access to the shared connection so that a transaction opened by one
task never absorbs statements issued by another. Code running inside a
transaction must go through the transaction handle; calling the adapter itself
there raises `DatabaseError`.
"""
import abc
import asyncio
import contextvars
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from canvass.db.base import Row, RunResult, StatementAdapter
from canvass.db.errors import DatabaseError, DatabaseNotInitializedError, SnapshotError
from canvass.db.sqltext import is_insert, split_script

logger = logging.getLogger(__name__)

# adapter whose transaction the current task (or its child tasks) is running
_tx_owner: contextvars.ContextVar["EmbeddedAdapter | None"] = contextvars.ContextVar(
    "embedded_tx_owner", default=None
)


def open_snapshot(path: Path) -> sqlite3.Connection:
    """Open an in-memory connection holding the contents of `path` (empty if missing)."""
    raw = sqlite3.connect(":memory:", check_same_thread=False)
    if path.exists():
        try:
            raw.deserialize(path.read_bytes())
            raw.execute("SELECT count(*) FROM sqlite_master").fetchone()
        except (OSError, sqlite3.DatabaseError) as e:
            raw.close()
            raise SnapshotError(f"cannot load snapshot {path}: {e}") from e
    raw.execute("PRAGMA foreign_keys = ON")
    return raw


class _EmbeddedOps(abc.ABC):
    """Synchronous statement execution on one SQLAlchemy connection."""

    @abc.abstractmethod
    def _connection(self) -> Connection: ...

    def _fetch_one(self, sql: str, params: tuple) -> Row | None:
        row = self._connection().exec_driver_sql(sql, tuple(params)).mappings().first()
        return dict(row) if row is not None else None

    def _fetch_all(self, sql: str, params: tuple) -> list[Row]:
        result = self._connection().exec_driver_sql(sql, tuple(params))
        return [dict(row) for row in result.mappings().all()]

    def _execute(self, sql: str, params: tuple) -> RunResult:
        conn = self._connection()
        result = conn.exec_driver_sql(sql, tuple(params))
        affected = result.rowcount
        result.close()
        inserted_id = None
        # last_insert_rowid() keeps the previous id when the insert was skipped
        if is_insert(sql) and affected > 0:
            inserted_id = conn.exec_driver_sql("SELECT last_insert_rowid()").scalar()
        return RunResult(inserted_id=inserted_id, affected=affected)

    def _exec(self, script: str) -> None:
        conn = self._connection()
        for stmt in split_script(script):
            conn.exec_driver_sql(stmt)


class EmbeddedAdapter(_EmbeddedOps, StatementAdapter):
    dialect = "sqlite"

    def __init__(self, snapshot_path: str | os.PathLike):
        self.snapshot_path = Path(snapshot_path)
        self._raw: sqlite3.Connection | None = None
        self._engine: Engine | None = None
        self._conn: Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        if self._conn is not None:
            return
        raw = open_snapshot(self.snapshot_path)
        # AUTOCOMMIT hands transaction control to the explicit BEGIN/COMMIT/ROLLBACK below
        self._engine = create_engine(
            "sqlite://",
            creator=lambda: raw,
            poolclass=StaticPool,
            isolation_level="AUTOCOMMIT",
        )
        self._raw = raw
        self._conn = self._engine.connect()
        logger.info("Embedded database loaded from %s", self.snapshot_path)

    def _connection(self) -> Connection:
        if self._conn is None:
            raise DatabaseNotInitializedError("embedded database is not open; call initialize() first")
        return self._conn

    @asynccontextmanager
    async def _locked(self) -> AsyncIterator[None]:
        # the lock is not reentrant; waiting on it from inside the transaction never returns
        if _tx_owner.get() is self:
            raise DatabaseError("use the transaction handle inside a unit of work")
        async with self._lock:
            yield

    async def fetch_one(self, sql: str, params: tuple) -> Row | None:
        async with self._locked():
            return self._fetch_one(sql, params)

    async def fetch_all(self, sql: str, params: tuple) -> list[Row]:
        async with self._locked():
            return self._fetch_all(sql, params)

    async def execute(self, sql: str, params: tuple) -> RunResult:
        async with self._locked():
            return self._execute(sql, params)

    async def exec(self, script: str) -> None:
        async with self._locked():
            self._exec(script)

    def _rollback_if_open(self) -> None:
        if self._raw is not None and self._raw.in_transaction:
            self._connection().exec_driver_sql("ROLLBACK")

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["EmbeddedTransaction"]:
        conn = self._connection()
        async with self._locked():
            conn.exec_driver_sql("BEGIN")
            tx = EmbeddedTransaction(self)
            token = _tx_owner.set(self)
            try:
                yield tx
            except BaseException:
                self._rollback_if_open()
                raise
            else:
                try:
                    conn.exec_driver_sql("COMMIT")
                except Exception:
                    self._rollback_if_open()
                    raise
            finally:
                _tx_owner.reset(token)
                tx.close()

    def _write_snapshot(self) -> None:
        if self._raw is None:
            raise DatabaseNotInitializedError("embedded database is not open")
        data = self._raw.serialize()
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.snapshot_path.with_name(self.snapshot_path.name + ".tmp")
        try:
            tmp.write_bytes(data)
            os.replace(tmp, self.snapshot_path)
        except OSError as e:
            raise SnapshotError(f"cannot write snapshot {self.snapshot_path}: {e}") from e
        logger.debug("Snapshot written: %s (%d bytes)", self.snapshot_path, len(data))

    async def checkpoint(self) -> None:
        async with self._locked():
            self._write_snapshot()

    async def shutdown(self, persist: bool = True) -> None:
        """Close the database, writing a final snapshot unless `persist` is False."""
        if self._conn is None:
            return
        async with self._locked():
            if persist:
                self._write_snapshot()
            self._conn.close()
            self._engine.dispose()
            self._raw.close()
            self._conn = self._engine = self._raw = None
        logger.info("Embedded database %s closed (persisted=%s)", self.snapshot_path, persist)


class EmbeddedTransaction(_EmbeddedOps, StatementAdapter):
    """Adapter handed to a unit of work; valid only until its transaction ends.

    The owning adapter already holds the lock, so statements run directly.
    `begin()` on this handle joins the running transaction.
    """

    dialect = EmbeddedAdapter.dialect

    def __init__(self, owner: EmbeddedAdapter):
        self._owner = owner
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def _connection(self) -> Connection:
        if self._closed:
            raise DatabaseError("transaction handle used after its transaction ended")
        return self._owner._connection()

    async def fetch_one(self, sql: str, params: tuple) -> Row | None:
        return self._fetch_one(sql, params)

    async def fetch_all(self, sql: str, params: tuple) -> list[Row]:
        return self._fetch_all(sql, params)

    async def execute(self, sql: str, params: tuple) -> RunResult:
        return self._execute(sql, params)

    async def exec(self, script: str) -> None:
        self._exec(script)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator["EmbeddedTransaction"]:
        self._connection()
        yield self

    async def shutdown(self) -> None:
        raise DatabaseError("cannot shut down the database from inside a transaction")
