"""The statement-adapter contract shared by both storage engines.

Callers write SQL once with `?` placeholders and talk to either engine through
the same four calls:

    row = await db.prepare("SELECT * FROM users WHERE email = ?").get(email)
    rows = await db.prepare("SELECT * FROM questionnaires").all()
    res = await db.prepare("INSERT INTO options (question_id, text) VALUES (?, ?)").run(qid, text)
    await db.exec("CREATE TABLE IF NOT EXISTS ...")

and group writes with the transaction coordinator:

    async with db.begin() as tx:
        await tx.prepare(...).run(...)

    create = db.transaction(create_questionnaire)   # create_questionnaire(tx, *args)
    questionnaire_id = await create(payload)
"""
import abc
import functools
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")

Row = dict[str, Any]


@dataclass(frozen=True)
class RunResult:
    inserted_id: Any
    affected: int


class Statement:
    """A SQL template bound to an adapter. Holds no engine resources between calls."""

    def __init__(self, adapter: "StatementAdapter", sql: str):
        self.adapter = adapter
        self.sql = sql

    async def get(self, *params: Any) -> Row | None:
        return await self.adapter.fetch_one(self.sql, params)

    async def all(self, *params: Any) -> list[Row]:
        return await self.adapter.fetch_all(self.sql, params)

    async def run(self, *params: Any) -> RunResult:
        return await self.adapter.execute(self.sql, params)

    def __repr__(self) -> str:
        return f"Statement({self.sql!r})"


class StatementAdapter(abc.ABC):
    """Uniform get/all/run/exec/transaction interface over one storage engine."""

    dialect: str = ""

    def prepare(self, sql: str) -> Statement:
        return Statement(self, sql)

    @abc.abstractmethod
    async def fetch_one(self, sql: str, params: tuple) -> Row | None: ...

    @abc.abstractmethod
    async def fetch_all(self, sql: str, params: tuple) -> list[Row]: ...

    @abc.abstractmethod
    async def execute(self, sql: str, params: tuple) -> RunResult: ...

    @abc.abstractmethod
    async def exec(self, script: str) -> None: ...

    @abc.abstractmethod
    def begin(self) -> AbstractAsyncContextManager["StatementAdapter"]:
        """BEGIN on entry, COMMIT on clean exit, ROLLBACK and re-raise otherwise.

        Yields an adapter scoped to the transaction's connection.
        """

    def transaction(self, fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Wrap `fn(tx, *args, **kwargs)` so every call runs in its own transaction."""

        @functools.wraps(fn)
        async def wrapped(*args: Any, **kwargs: Any) -> T:
            async with self.begin() as tx:
                return await fn(tx, *args, **kwargs)

        return wrapped

    async def initialize(self) -> None:
        """Open the engine. Safe to call once per adapter."""

    async def checkpoint(self) -> None:
        """Persist in-memory state. Engines that persist per statement do nothing."""

    @abc.abstractmethod
    async def shutdown(self) -> None: ...
