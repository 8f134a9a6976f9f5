import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, TimeoutError as PoolTimeout

from canvass.db.base import RunResult
from canvass.db.embedded import EmbeddedAdapter
from canvass.db.errors import DatabaseError, DatabaseNotInitializedError, is_unique_violation
from canvass.db.pooled import PooledAdapter
from canvass.db.schema import TABLES, initialize_schema


async def _open(tmp_path, **kwargs):
    db = PooledAdapter(f"sqlite+aiosqlite:///{tmp_path / 'pooled.db'}", **kwargs)
    await db.initialize()
    await initialize_schema(db)
    return db


async def _seed_user_and_questionnaire(db):
    user = await db.prepare("INSERT INTO users (password_hash, alias) VALUES (?, ?)").run("x", "frank")
    questionnaire = await db.prepare(
        "INSERT INTO questionnaires (title, created_by) VALUES (?, ?)"
    ).run("Survey", user.inserted_id)
    return user.inserted_id, questionnaire.inserted_id


def test_same_contract_as_embedded(tmp_path):
    async def main():
        db = await _open(tmp_path)
        rows = await db.prepare("SELECT name FROM sqlite_master WHERE type = 'table'").all()
        user_id, qid = await _seed_user_and_questionnaire(db)
        row = await db.prepare("SELECT * FROM users WHERE id = ?").get(user_id)
        missing = await db.prepare("SELECT * FROM users WHERE id = ?").get(user_id + 100)
        renamed = await db.prepare("UPDATE users SET alias = ? WHERE id = ?").run("francis", user_id)
        patched = await initialize_schema(db)
        await db.shutdown()
        return {r["name"] for r in rows}, user_id, qid, row, missing, renamed, patched

    names, user_id, qid, row, missing, renamed, patched = asyncio.run(main())
    assert set(TABLES) <= names
    assert user_id == 1 and qid == 1
    assert row["alias"] == "frank"
    assert row["email"] is None
    assert missing is None
    assert renamed.affected == 1
    assert renamed.inserted_id is None
    assert patched == []


def test_transaction_rolls_back_on_error(tmp_path):
    async def main():
        db = await _open(tmp_path)
        user_id, qid = await _seed_user_and_questionnaire(db)

        async def add_question_and_fail(tx):
            await tx.prepare(
                "INSERT INTO questions (questionnaire_id, text, type) VALUES (?, ?, ?)"
            ).run(qid, "Lost", "text")
            raise ValueError("abort")

        with pytest.raises(ValueError):
            await db.transaction(add_question_and_fail)()

        async with db.begin() as tx:
            kept = await tx.prepare(
                "INSERT INTO questions (questionnaire_id, text, type) VALUES (?, ?, ?)"
            ).run(qid, "Kept", "text")

        texts = [r["text"] for r in await db.prepare("SELECT text FROM questions").all()]
        await db.shutdown()
        return kept, texts

    kept, texts = asyncio.run(main())
    assert kept.inserted_id is not None
    assert texts == ["Kept"]


def test_foreign_keys_enforced(tmp_path):
    async def main():
        db = await _open(tmp_path)
        try:
            await db.prepare("INSERT INTO questionnaires (title, created_by) VALUES (?, ?)").run("Orphan", 999)
        finally:
            await db.shutdown()

    with pytest.raises(IntegrityError):
        asyncio.run(main())


def test_pool_checkout_times_out(tmp_path):
    async def main():
        db = await _open(tmp_path, pool_size=1, pool_timeout=0.2)
        try:
            async with db.begin():
                await db.prepare("SELECT 1 AS one").get()
        finally:
            await db.shutdown()

    with pytest.raises(PoolTimeout):
        asyncio.run(main())


async def _race(db, user_id, qid):
    """Two units of work check for an existing response, then both insert."""
    barrier = asyncio.Barrier(2)

    async def claim(token):
        async with db.begin() as tx:
            existing = await tx.prepare(
                "SELECT id FROM responses WHERE user_id = ? AND questionnaire_id = ?"
            ).get(user_id, qid)
            await barrier.wait()
            if existing:
                return "skipped"
            await tx.prepare(
                "INSERT INTO responses (user_id, questionnaire_id, share_token) VALUES (?, ?, ?)"
            ).run(user_id, qid, token)
            return "inserted"

    return await asyncio.gather(claim("a"), claim("b"), return_exceptions=True)


def test_check_then_insert_race_without_unique_index(tmp_path):
    async def main():
        db = await _open(tmp_path)
        await db.exec("DROP INDEX uq_responses_user_id_questionnaire_id")
        user_id, qid = await _seed_user_and_questionnaire(db)
        outcome = await _race(db, user_id, qid)
        count = await db.prepare("SELECT COUNT(*) AS n FROM responses").get()
        await db.shutdown()
        return outcome, count["n"]

    outcome, count = asyncio.run(main())
    # both pre-checks saw nothing, so both writes went through
    assert outcome == ["inserted", "inserted"]
    assert count == 2


def test_check_then_insert_race_caught_by_unique_index(tmp_path):
    async def main():
        db = await _open(tmp_path)
        user_id, qid = await _seed_user_and_questionnaire(db)
        outcome = await _race(db, user_id, qid)
        count = await db.prepare("SELECT COUNT(*) AS n FROM responses").get()
        await db.shutdown()
        return outcome, count["n"]

    outcome, count = asyncio.run(main())
    errors = [o for o in outcome if isinstance(o, Exception)]
    assert outcome.count("inserted") == 1
    assert len(errors) == 1
    assert isinstance(errors[0], IntegrityError)
    assert is_unique_violation(errors[0], "questionnaire_id")
    assert count == 1


def test_use_before_initialize(tmp_path):
    async def main():
        db = PooledAdapter(f"sqlite+aiosqlite:///{tmp_path / 'pooled.db'}")
        await db.prepare("SELECT 1").get()

    with pytest.raises(DatabaseNotInitializedError):
        asyncio.run(main())


def test_transaction_handle_expires(tmp_path):
    async def main():
        db = await _open(tmp_path)
        async with db.begin() as tx:
            pass
        try:
            await tx.prepare("SELECT 1").get()
        finally:
            await db.shutdown()

    with pytest.raises(DatabaseError):
        asyncio.run(main())


def test_skipped_insert_reports_no_id_on_both_engines(tmp_path):
    sql = "INSERT INTO users (id, password_hash, alias) VALUES (?, ?, ?) ON CONFLICT (id) DO NOTHING"

    async def run_twice(db):
        await initialize_schema(db)
        await db.prepare("INSERT INTO users (password_hash, alias) VALUES (?, ?)").run("x", "ivan")
        first = await db.prepare(sql).run(1, "x", "ivan-again")
        await db.prepare("INSERT INTO users (password_hash, alias) VALUES (?, ?)").run("x", "judy")
        second = await db.prepare(sql).run(1, "x", "ivan-again")
        await db.shutdown()
        return first, second

    async def main():
        embedded = EmbeddedAdapter(tmp_path / "embedded.db")
        await embedded.initialize()
        pooled = PooledAdapter(f"sqlite+aiosqlite:///{tmp_path / 'pooled.db'}")
        await pooled.initialize()
        return await run_twice(embedded), await run_twice(pooled)

    embedded, pooled = asyncio.run(main())
    assert embedded == pooled
    assert embedded[1] == RunResult(inserted_id=None, affected=0)
