from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from canvass.app.schemas.questionnaire import QuestionOut, QuestionnaireSummary


class SubmitResponseIn(BaseModel):
    questionnaire_id: int
    # question id -> free text, chosen option text, or list of chosen options
    answers: Dict[int, Union[str, int, float, List[Any], None]]
    guest_alias: Optional[str] = Field(default=None, max_length=30)

    @field_validator("answers")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("Answers are required")
        return v


class SubmitResponseOut(BaseModel):
    message: str = "Response submitted"
    response_id: int
    share_token: str


class ResponseSummary(BaseModel):
    id: int
    questionnaire_id: int
    user_id: Optional[int] = None
    guest_alias: Optional[str] = None
    share_token: Optional[str] = None
    completed_at: datetime | str | None = None
    questionnaire: QuestionnaireSummary
    questions: List[QuestionOut]


class SharedResponse(BaseModel):
    id: int
    display_name: str
    completed_at: datetime | str | None = None
    questionnaire: QuestionnaireSummary
    questions: List[QuestionOut]


class AdminAnswer(BaseModel):
    id: int
    question_id: int
    question_text: str
    question_type: str
    answer_text: Optional[str] = None


class AdminResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    user_alias: Optional[str] = None
    guest_alias: Optional[str] = None
    share_token: Optional[str] = None
    completed_at: datetime | str | None = None
    answers: List[AdminAnswer]
