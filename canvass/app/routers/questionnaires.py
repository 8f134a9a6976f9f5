# app/routers/questionnaires.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from canvass.app.core.config import Settings
from canvass.app.core.security import current_user, get_settings, optional_user, require_admin
from canvass.app.schemas.questionnaire import QuestionnaireCreate, QuestionnaireDetail, QuestionnaireSummary
from canvass.app.services.questionnaires import (
    create_questionnaire,
    get_questionnaire,
    load_questions,
    recent_questionnaire_ids,
    total_pages,
)
from canvass.db.base import StatementAdapter
from canvass.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/questionnaires", tags=["questionnaires"])


@router.get("/public", response_model=List[QuestionnaireSummary])
async def list_public(db: StatementAdapter = Depends(get_db)):
    """All questionnaires with their question counts, no login needed."""
    return await db.prepare(
        """
        SELECT q.*, u.email AS creator_email,
          (SELECT COUNT(*) FROM questions WHERE questionnaire_id = q.id) AS question_count
        FROM questionnaires q
        JOIN users u ON q.created_by = u.id
        ORDER BY q.created_at DESC, q.id DESC
        """
    ).all()


@router.get("", response_model=List[QuestionnaireSummary])
async def list_for_user(user: dict = Depends(current_user), db: StatementAdapter = Depends(get_db)):
    """All questionnaires; `completed` is 1 when the caller already responded."""
    return await db.prepare(
        """
        SELECT q.*, u.email AS creator_email,
          (SELECT COUNT(*) FROM questions WHERE questionnaire_id = q.id) AS question_count,
          (SELECT COUNT(*) FROM responses r WHERE r.questionnaire_id = q.id AND r.user_id = ?) AS completed
        FROM questionnaires q
        JOIN users u ON q.created_by = u.id
        ORDER BY q.created_at DESC, q.id DESC
        """
    ).all(user["id"])


@router.get("/{questionnaire_id}", response_model=QuestionnaireDetail)
async def get_one(
    questionnaire_id: int,
    user: dict | None = Depends(optional_user),
    db: StatementAdapter = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    questionnaire = await get_questionnaire(db, questionnaire_id)
    if not questionnaire:
        raise HTTPException(status_code=404, detail="Questionnaire not found")

    if user is None and questionnaire_id not in await recent_questionnaire_ids(db, settings.GUEST_RECENT_LIMIT):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")

    questions = await load_questions(db, questionnaire_id)
    return {**questionnaire, "questions": questions, "total_pages": total_pages(questions)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create(
    payload: QuestionnaireCreate,
    admin: dict = Depends(require_admin),
    db: StatementAdapter = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    create_all = db.transaction(create_questionnaire)
    questionnaire_id = await create_all(payload, admin["id"], settings.DEFAULT_LANGUAGE)
    logger.info(
        "Questionnaire %s created by user %s (%d questions)", questionnaire_id, admin["id"], len(payload.questions)
    )
    return {"message": "Questionnaire created", "questionnaire_id": questionnaire_id}


@router.delete("/{questionnaire_id}")
async def delete(questionnaire_id: int, admin: dict = Depends(require_admin), db: StatementAdapter = Depends(get_db)):
    res = await db.prepare("DELETE FROM questionnaires WHERE id = ?").run(questionnaire_id)
    if res.affected == 0:
        raise HTTPException(status_code=404, detail="Questionnaire not found")
    logger.info("Questionnaire %s deleted by user %s", questionnaire_id, admin["id"])
    return {"message": "Questionnaire deleted"}
