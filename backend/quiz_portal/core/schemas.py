from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

OPTION_LABELS = ("a", "b", "c", "d")
AnswerLabel = Literal["a", "b", "c", "d"]


class CamelModel(BaseModel):
    """Models whose wire names are camelCase (client-side records)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ------------------------------------------------------------
# Quiz content (owned by the backend, snake_case on the wire)
# ------------------------------------------------------------
class Question(BaseModel):
    id: int
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: AnswerLabel

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _lower_label(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def options(self) -> Dict[str, str]:
        return {label: getattr(self, f"option_{label}") for label in OPTION_LABELS}

    def public(self) -> Dict[str, Any]:
        """Question as shown while a session is running (no answer key)."""
        return self.model_dump(mode="json", exclude={"correct_answer"})


class QuizSummary(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class Quiz(QuizSummary):
    questions: List[Question] = Field(default_factory=list)

    def question_by_id(self, question_id: int) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


class LeaderboardEntry(BaseModel):
    username: str
    category: str
    average_score: float
    total_quizzes: int
    best_score: float
    latest_quiz_date: Optional[str] = None


# ------------------------------------------------------------
# Client-side records (camelCase on the wire)
# ------------------------------------------------------------
class LeaderboardSubmission(CamelModel):
    user_id: int
    quiz_id: int
    score: int                     # count of correct answers
    total_questions: int
    percentage: float


class QuizResult(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    quiz_id: int
    quiz_title: str
    score: float
    correct_answers: int
    total_questions: int
    answers: Dict[int, AnswerLabel] = Field(default_factory=dict)
    completed_at: datetime


class ResultStats(CamelModel):
    total_attempts: int
    average_score: Optional[float] = None
    best_score: Optional[float] = None


class ResultsResponse(ResultStats):
    results: List[QuizResult]


# ------------------------------------------------------------
# Request models
# ------------------------------------------------------------
class StartSessionRequest(CamelModel):
    quiz_id: int
    user_id: Optional[int] = None


class AnswerRequest(CamelModel):
    question_id: int
    answer: str                    # validated by the session, not here


class IdentityRequest(CamelModel):
    user_id: int


# ------------------------------------------------------------
# Response models
# ------------------------------------------------------------
class SessionView(CamelModel):
    session_id: str
    quiz_id: int
    quiz_title: str
    state: str
    current_index: int
    total_questions: int
    answered: int
    progress: float
    question: Optional[Dict[str, Any]] = None
    answers: Dict[int, str] = Field(default_factory=dict)
