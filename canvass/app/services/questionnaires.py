"""Questionnaire operations shared by the routers.

`create_questionnaire` is a unit of work: run it through `db.transaction` so
the questionnaire, its questions and their options land together or not at
all. The loaders assemble the nested question/option structure the frontend
pages on.
"""
# app/services/questionnaires.py
from collections import defaultdict
from typing import Any

from canvass.app.schemas.questionnaire import QuestionnaireCreate, QuestionType
from canvass.db.base import StatementAdapter


async def create_questionnaire(
    tx: StatementAdapter, payload: QuestionnaireCreate, created_by: int, default_language: str
) -> int:
    """Insert a questionnaire with its questions and options.

    Args:
        tx: Adapter scoped to the running transaction.
        payload: Validated questionnaire definition (at least one question).
        created_by: ID of the admin creating it.
        default_language: Language tag used when the payload has none.

    Returns:
        int: The new questionnaire id.
    """
    res = await tx.prepare(
        "INSERT INTO questionnaires (title, description, image_url, language, created_by) VALUES (?, ?, ?, ?, ?)"
    ).run(
        payload.title,
        payload.description or None,
        payload.image_url or None,
        payload.language or default_language,
        created_by,
    )
    questionnaire_id = res.inserted_id

    insert_question = tx.prepare(
        "INSERT INTO questions (questionnaire_id, text, type, page_number, order_num) VALUES (?, ?, ?, ?, ?)"
    )
    insert_option = tx.prepare("INSERT INTO options (question_id, text, order_num) VALUES (?, ?, ?)")

    for idx, question in enumerate(payload.questions):
        q_res = await insert_question.run(
            questionnaire_id,
            question.text,
            question.type.value,
            question.page_number,
            question.order_num if question.order_num is not None else idx,
        )
        if question.type == QuestionType.text:
            continue
        for opt_idx, option in enumerate(question.options):
            await insert_option.run(
                q_res.inserted_id,
                option.text,
                option.order_num if option.order_num is not None else opt_idx,
            )

    return questionnaire_id


async def recent_questionnaire_ids(db: StatementAdapter, limit: int) -> list[int]:
    """IDs of the newest questionnaires; guests may only open and answer these."""
    rows = await db.prepare(
        "SELECT id FROM questionnaires ORDER BY created_at DESC, id DESC LIMIT ?"
    ).all(limit)
    return [row["id"] for row in rows]


async def get_questionnaire(db: StatementAdapter, questionnaire_id: int) -> dict[str, Any] | None:
    return await db.prepare(
        """
        SELECT q.*, u.email AS creator_email
        FROM questionnaires q
        JOIN users u ON q.created_by = u.id
        WHERE q.id = ?
        """
    ).get(questionnaire_id)


async def load_questions(
    db: StatementAdapter, questionnaire_id: int, response_id: int | None = None
) -> list[dict[str, Any]]:
    """Questions ordered by page then position, each with its options.

    With `response_id`, every question also carries that response's `answer_text`.
    """
    if response_id is None:
        questions = await db.prepare(
            """
            SELECT * FROM questions
            WHERE questionnaire_id = ?
            ORDER BY page_number, order_num, id
            """
        ).all(questionnaire_id)
    else:
        questions = await db.prepare(
            """
            SELECT q.*, a.answer_text
            FROM questions q
            LEFT JOIN answers a ON a.question_id = q.id AND a.response_id = ?
            WHERE q.questionnaire_id = ?
            ORDER BY q.page_number, q.order_num, q.id
            """
        ).all(response_id, questionnaire_id)

    options = await db.prepare(
        """
        SELECT o.*
        FROM options o
        JOIN questions q ON o.question_id = q.id
        WHERE q.questionnaire_id = ?
        ORDER BY o.question_id, o.order_num, o.id
        """
    ).all(questionnaire_id)

    by_question = defaultdict(list)
    for option in options:
        by_question[option["question_id"]].append(option)

    return [
        {**q, "options": by_question.get(q["id"], []) if q["type"] != QuestionType.text.value else []}
        for q in questions
    ]


def total_pages(questions: list[dict[str, Any]]) -> int:
    return max((q["page_number"] for q in questions), default=1)
