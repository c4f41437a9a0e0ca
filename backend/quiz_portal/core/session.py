# backend/quiz_portal/core/session.py
"""
One quiz attempt as a state machine.

    LOADING --load ok--> READY(i=0) ... READY(last) --submit--> SUBMITTED
    LOADING --load fails--> ERRORED

While READY, answers are recorded per question id (overwriting) and the
cursor moves with next/previous; moving past either end is a no-op. Whether
the current question must be answered before moving on is left to the UI.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from .errors import InvalidAnswer, SessionStateError
from .resilient import LeaderboardPublisher, PublishCallback, ResilientQueryLayer, Source
from .result_store import ResultStore
from .schemas import OPTION_LABELS, LeaderboardSubmission, Question, Quiz, QuizResult, SessionView

logger = logging.getLogger("quiz.session")


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    SUBMITTED = "submitted"
    ERRORED = "errored"


def score_answers(questions: Iterable[Question], answers: Dict[int, str]) -> Tuple[int, int, float]:
    """
    Return (correct, total, percentage). Unanswered questions count as wrong.
    The percentage is not rounded.
    """
    questions = list(questions)
    total = len(questions)
    correct = sum(1 for q in questions if answers.get(q.id) == q.correct_answer)
    score = 100 * correct / total if total else 0.0
    return correct, total, float(score)


class QuizSession:
    def __init__(self, quiz_id: int, user_id: Optional[int] = None, session_id: Optional[str] = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.quiz_id = quiz_id
        self.user_id = user_id
        self.state = SessionState.LOADING
        self.quiz: Optional[Quiz] = None
        self.source: Optional[Source] = None
        self.current_index = 0
        self.answers: Dict[int, str] = {}
        self.result: Optional[QuizResult] = None
        self.error: Optional[BaseException] = None

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------
    async def load(self, layer: ResilientQueryLayer) -> "QuizSession":
        self._require(SessionState.LOADING, "load")
        try:
            fetched = await layer.quiz(self.quiz_id)
        except Exception as e:
            logger.exception(f"Session {self.session_id}: loading quiz {self.quiz_id} failed")
            self.state = SessionState.ERRORED
            self.error = e
            return self

        if not fetched.data.questions:
            logger.error(f"Session {self.session_id}: quiz {self.quiz_id} has no questions")
            self.state = SessionState.ERRORED
            self.error = ValueError(f"quiz {self.quiz_id} has no questions")
            return self

        self.quiz = fetched.data
        self.source = fetched.source
        self.current_index = 0
        self.state = SessionState.READY
        logger.debug(
            f"Session {self.session_id} ready: quiz={self.quiz_id} "
            f"questions={self.total_questions} source={fetched.source.value}"
        )
        return self

    def select_answer(self, question_id: int, label: str) -> None:
        self._require(SessionState.READY, "select_answer")
        if label not in OPTION_LABELS:
            raise InvalidAnswer(f"answer must be one of {', '.join(OPTION_LABELS)}, got {label!r}")
        if self.quiz.question_by_id(question_id) is None:
            raise InvalidAnswer(f"question {question_id} is not part of quiz {self.quiz_id}")
        self.answers[question_id] = label

    def next(self) -> None:
        self._require(SessionState.READY, "next")
        if self.current_index + 1 < self.total_questions:
            self.current_index += 1

    def previous(self) -> None:
        self._require(SessionState.READY, "previous")
        if self.current_index > 0:
            self.current_index -= 1

    async def submit(
        self,
        store: ResultStore,
        publisher: Optional[LeaderboardPublisher] = None,
        on_published: Optional[PublishCallback] = None,
    ) -> QuizResult:
        """
        Score the attempt, append it to the local log and, when a user is
        known, schedule the leaderboard publish without waiting for it.
        """
        self._require(SessionState.READY, "submit")
        if not self.is_last_question:
            raise SessionStateError(
                f"cannot submit at question {self.current_index + 1} of {self.total_questions}"
            )
        correct, total, score = score_answers(self.quiz.questions, self.answers)
        result = QuizResult(
            quiz_id=self.quiz.id,
            quiz_title=self.quiz.title,
            score=score,
            correct_answers=correct,
            total_questions=total,
            answers=dict(self.answers),
            completed_at=datetime.now(timezone.utc),
        )
        await asyncio.to_thread(store.append, result)
        self.result = result
        self.state = SessionState.SUBMITTED
        logger.info(f"Session {self.session_id} submitted: {correct}/{total} ({score:.1f}%)")

        if self.user_id is None:
            logger.debug(f"Session {self.session_id}: no identity, leaderboard publish skipped")
        elif publisher is not None:
            publisher.publish(
                LeaderboardSubmission(
                    user_id=self.user_id,
                    quiz_id=self.quiz.id,
                    score=correct,
                    total_questions=total,
                    percentage=score,
                ),
                on_published,
            )
        return result

    # ------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------
    @property
    def total_questions(self) -> int:
        return len(self.quiz.questions) if self.quiz else 0

    @property
    def current_question(self) -> Optional[Question]:
        if self.state is not SessionState.READY:
            return None
        return self.quiz.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return self.total_questions > 0 and self.current_index == self.total_questions - 1

    @property
    def progress(self) -> float:
        """Position of the cursor as a percentage of the quiz."""
        if not self.total_questions:
            return 0.0
        if self.state is SessionState.SUBMITTED:
            return 100.0
        return 100 * (self.current_index + 1) / self.total_questions

    @property
    def score(self) -> Optional[float]:
        return self.result.score if self.result else None

    def view(self) -> SessionView:
        question = self.current_question
        return SessionView(
            session_id=self.session_id,
            quiz_id=self.quiz_id,
            quiz_title=self.quiz.title if self.quiz else "",
            state=self.state.value,
            current_index=self.current_index,
            total_questions=self.total_questions,
            answered=len(self.answers),
            progress=self.progress,
            question=question.public() if question else None,
            answers=dict(self.answers),
        )

    def _require(self, state: SessionState, operation: str) -> None:
        if self.state is not state:
            raise SessionStateError(f"cannot {operation} while session is {self.state.value}")


class SessionRegistry:
    """In-memory sessions keyed by id; a session leaves once it is submitted."""

    def __init__(self):
        self._sessions: Dict[str, QuizSession] = {}

    def add(self, session: QuizSession) -> QuizSession:
        self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Optional[QuizSession]:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
