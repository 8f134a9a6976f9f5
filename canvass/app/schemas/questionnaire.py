import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class QuestionType(str, enum.Enum):
    text = "text"
    single_choice = "single_choice"
    multiple_choice = "multiple_choice"


class OptionIn(BaseModel):
    text: str = Field(min_length=1)
    order_num: Optional[int] = None


class QuestionIn(BaseModel):
    text: str = Field(min_length=1)
    type: QuestionType
    page_number: int = Field(default=1, ge=1)
    order_num: Optional[int] = None
    options: List[OptionIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_options(self):
        if self.type == QuestionType.text:
            # text questions never carry options
            self.options = []
        elif len(self.options) < 2:
            raise ValueError("Choice questions need at least 2 options")
        return self


class QuestionnaireCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None
    language: Optional[str] = None
    questions: List[QuestionIn] = Field(min_length=1)


class OptionOut(BaseModel):
    id: int
    question_id: int
    text: str
    order_num: int


class QuestionOut(BaseModel):
    id: int
    questionnaire_id: int
    text: str
    type: QuestionType
    page_number: int
    order_num: int
    options: List[OptionOut] = Field(default_factory=list)
    answer_text: Optional[str] = None


class QuestionnaireSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    language: Optional[str] = None
    created_by: int
    created_at: datetime | str | None = None
    creator_email: Optional[str] = None
    question_count: Optional[int] = None
    completed: Optional[int] = None


class QuestionnaireDetail(QuestionnaireSummary):
    questions: List[QuestionOut]
    total_pages: int
