# app/routers/responses.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from canvass.app.core.config import Settings
from canvass.app.core.security import current_user, get_settings, optional_user, require_admin
from canvass.app.schemas.response import (
    AdminResponse,
    ResponseSummary,
    SharedResponse,
    SubmitResponseIn,
    SubmitResponseOut,
)
from canvass.app.services.questionnaires import get_questionnaire, load_questions, recent_questionnaire_ids
from canvass.app.services.responses import (
    AlreadyRespondedError,
    UnknownQuestionError,
    display_name,
    find_user_response,
    submit_response,
)
from canvass.db.base import StatementAdapter
from canvass.db.errors import is_unique_violation
from canvass.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/responses", tags=["responses"])


@router.post("", response_model=SubmitResponseOut, status_code=status.HTTP_201_CREATED)
async def submit(
    payload: SubmitResponseIn,
    user: dict | None = Depends(optional_user),
    db: StatementAdapter = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Submit a completed questionnaire.

    Guests may answer only the most recent questionnaires; logged-in users may
    answer any questionnaire once.
    """
    questionnaire = await db.prepare("SELECT id FROM questionnaires WHERE id = ?").get(payload.questionnaire_id)
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionnaire not found")

    if user is None:
        recent = await recent_questionnaire_ids(db, settings.GUEST_RECENT_LIMIT)
        if payload.questionnaire_id not in recent:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    submit_all = db.transaction(submit_response)
    try:
        response_id, share_token = await submit_all(
            payload.questionnaire_id,
            payload.answers,
            user["id"] if user else None,
            payload.guest_alias,
        )
    except AlreadyRespondedError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnknownQuestionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IntegrityError as e:
        if is_unique_violation(e, "questionnaire_id"):
            raise HTTPException(status_code=400, detail="You have already completed this questionnaire")
        raise

    logger.info(
        "Response %s submitted for questionnaire %s by %s",
        response_id, payload.questionnaire_id, f"user {user['id']}" if user else "guest",
    )
    return {"response_id": response_id, "share_token": share_token}


@router.get("/questionnaire/{questionnaire_id}", response_model=ResponseSummary)
async def own_response(
    questionnaire_id: int, user: dict = Depends(current_user), db: StatementAdapter = Depends(get_db)
):
    """The caller's own response to a questionnaire, for the summary page."""
    response = await find_user_response(db, user["id"], questionnaire_id)
    if not response:
        raise HTTPException(status_code=404, detail="Response not found")

    questionnaire = await get_questionnaire(db, questionnaire_id)
    questions = await load_questions(db, questionnaire_id, response_id=response["id"])
    return {**response, "questionnaire": questionnaire, "questions": questions}


@router.get("/shared/{share_token}", response_model=SharedResponse)
async def shared_response(share_token: str, db: StatementAdapter = Depends(get_db)):
    """A response opened through its share link; no login needed."""
    response = await db.prepare(
        """
        SELECT r.*, u.alias AS user_alias
        FROM responses r
        LEFT JOIN users u ON r.user_id = u.id
        WHERE r.share_token = ?
        """
    ).get(share_token)
    if not response:
        raise HTTPException(status_code=404, detail="Shared response not found")

    questionnaire = await get_questionnaire(db, response["questionnaire_id"])
    questions = await load_questions(db, response["questionnaire_id"], response_id=response["id"])
    return {
        "id": response["id"],
        "display_name": display_name(response),
        "completed_at": response["completed_at"],
        "questionnaire": questionnaire,
        "questions": questions,
    }


@router.get("/admin/questionnaire/{questionnaire_id}", response_model=List[AdminResponse])
async def admin_responses(
    questionnaire_id: int, admin: dict = Depends(require_admin), db: StatementAdapter = Depends(get_db)
):
    responses = await db.prepare(
        """
        SELECT r.*, u.email AS user_email, u.alias AS user_alias
        FROM responses r
        LEFT JOIN users u ON r.user_id = u.id
        WHERE r.questionnaire_id = ?
        ORDER BY r.completed_at DESC, r.id DESC
        """
    ).all(questionnaire_id)
    if not responses:
        return []

    answers = await db.prepare(
        """
        SELECT a.*, q.text AS question_text, q.type AS question_type
        FROM answers a
        JOIN questions q ON a.question_id = q.id
        JOIN responses r ON a.response_id = r.id
        WHERE r.questionnaire_id = ?
        ORDER BY q.page_number, q.order_num, q.id
        """
    ).all(questionnaire_id)

    by_response: dict[int, list] = {r["id"]: [] for r in responses}
    for answer in answers:
        by_response[answer["response_id"]].append(answer)
    return [{**r, "answers": by_response[r["id"]]} for r in responses]
