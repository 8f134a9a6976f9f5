import asyncio

from canvass.db.embedded import EmbeddedAdapter
from canvass.db.migrate import main as migrate_main, migrate
from canvass.db.pooled import PooledAdapter
from canvass.db.schema import initialize_schema


async def _build_snapshot(path):
    db = EmbeddedAdapter(path)
    await db.initialize()
    await initialize_schema(db)
    # leave a gap in the ids so preservation is visible
    await db.prepare("INSERT INTO users (id, password_hash, alias, is_admin) VALUES (?, ?, ?, ?)").run(5, "x", "root", 1)
    qid = (await db.prepare("INSERT INTO questionnaires (title, created_by) VALUES (?, ?)").run("Q", 5)).inserted_id
    question = await db.prepare(
        "INSERT INTO questions (questionnaire_id, text, type) VALUES (?, ?, ?)"
    ).run(qid, "Color?", "single_choice")
    for text in ("Red", "Blue"):
        await db.prepare("INSERT INTO options (question_id, text) VALUES (?, ?)").run(question.inserted_id, text)
    response = await db.prepare(
        "INSERT INTO responses (user_id, questionnaire_id, guest_alias, share_token) VALUES (?, ?, ?, ?)"
    ).run(None, qid, "Guest", "abc123")
    await db.prepare(
        "INSERT INTO answers (response_id, question_id, answer_text) VALUES (?, ?, ?)"
    ).run(response.inserted_id, question.inserted_id, "Red")
    await db.shutdown()


async def _read_target(url):
    db = PooledAdapter(url)
    await db.initialize()
    users = await db.prepare("SELECT id, alias, is_admin FROM users").all()
    answers = await db.prepare("SELECT answer_text FROM answers").all()
    # new rows continue after the copied ids
    new_user = await db.prepare("INSERT INTO users (password_hash, alias) VALUES (?, ?)").run("y", "newbie")
    await db.shutdown()
    return users, answers, new_user.inserted_id


def test_copy_preserves_ids_and_is_rerunnable(tmp_path):
    snapshot = tmp_path / "questionnaire.db"
    target = f"sqlite+aiosqlite:///{tmp_path / 'server.db'}"
    asyncio.run(_build_snapshot(snapshot))

    first = asyncio.run(migrate(snapshot, target))
    second = asyncio.run(migrate(snapshot, target))
    users, answers, new_id = asyncio.run(_read_target(target))

    assert first == {"users": 1, "questionnaires": 1, "questions": 1, "options": 2, "responses": 1, "answers": 1}
    assert set(second.values()) == {0}
    assert users == [{"id": 5, "alias": "root", "is_admin": 1}]
    assert answers == [{"answer_text": "Red"}]
    assert new_id == 6
    # the source snapshot is left untouched
    assert snapshot.exists()


def test_cli_reports_missing_snapshot(tmp_path):
    code = migrate_main(["--snapshot", str(tmp_path / "nope.db"), f"sqlite+aiosqlite:///{tmp_path / 'server.db'}"])
    assert code == 1
