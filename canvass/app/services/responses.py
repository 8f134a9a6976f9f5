"""Submitting a completed questionnaire.

`submit_response` is a unit of work: the response row and all of its answers
are written in one transaction. The "already responded" pre-check runs inside
that transaction, and the unique index on (user_id, questionnaire_id) backs it
for submissions racing on separate pooled connections.
"""
# app/services/responses.py
import json
from typing import Any, Mapping

from canvass.app.core.security import new_share_token
from canvass.db.base import StatementAdapter

ANONYMOUS = "Anonymous"


class AlreadyRespondedError(ValueError):
    pass


class UnknownQuestionError(ValueError):
    pass


def serialize_answer(value: Any) -> str | None:
    """Multi-select answers are stored as a JSON array string, everything else as text."""
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


async def find_user_response(db: StatementAdapter, user_id: int, questionnaire_id: int) -> dict[str, Any] | None:
    return await db.prepare(
        "SELECT * FROM responses WHERE user_id = ? AND questionnaire_id = ?"
    ).get(user_id, questionnaire_id)


async def submit_response(
    tx: StatementAdapter,
    questionnaire_id: int,
    answers: Mapping[int, Any],
    user_id: int | None,
    guest_alias: str | None,
) -> tuple[int, str]:
    """Store one response and its answers.

    Args:
        tx: Adapter scoped to the running transaction.
        questionnaire_id: The questionnaire being answered.
        answers: Question id -> answer value.
        user_id: The submitting user, or None for a guest.
        guest_alias: Display name for a guest submission.

    Returns:
        tuple[int, str]: The response id and its share token.

    Raises:
        AlreadyRespondedError: The user already answered this questionnaire.
        UnknownQuestionError: An answer refers to a question outside the questionnaire.
    """
    if user_id is not None and await find_user_response(tx, user_id, questionnaire_id):
        raise AlreadyRespondedError("You have already completed this questionnaire")

    rows = await tx.prepare("SELECT id FROM questions WHERE questionnaire_id = ?").all(questionnaire_id)
    known = {row["id"] for row in rows}
    unknown = sorted(set(answers) - known)
    if unknown:
        raise UnknownQuestionError(f"Questions not in this questionnaire: {unknown}")

    share_token = new_share_token()
    res = await tx.prepare(
        "INSERT INTO responses (user_id, questionnaire_id, guest_alias, share_token) VALUES (?, ?, ?, ?)"
    ).run(
        user_id,
        questionnaire_id,
        None if user_id is not None else (guest_alias or ANONYMOUS),
        share_token,
    )
    response_id = res.inserted_id

    insert_answer = tx.prepare("INSERT INTO answers (response_id, question_id, answer_text) VALUES (?, ?, ?)")
    for question_id, value in answers.items():
        await insert_answer.run(response_id, question_id, serialize_answer(value))

    return response_id, share_token


def display_name(response: Mapping[str, Any]) -> str:
    return response.get("user_alias") or response.get("guest_alias") or ANONYMOUS
