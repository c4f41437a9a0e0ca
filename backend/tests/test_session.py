import asyncio
import itertools

import httpx
import pytest

from quiz_portal.core import (
    BackendGateway,
    FallbackCatalog,
    InvalidAnswer,
    LeaderboardPublisher,
    QuizSession,
    ResilientQueryLayer,
    SessionState,
    SessionStateError,
    score_answers,
)

from conftest import BACKEND_URL

SAMPLE = FallbackCatalog.quiz(1)
CORRECT = {q.id: q.correct_answer for q in SAMPLE.questions}
WRONG = {q.id: "a" if q.correct_answer != "a" else "d" for q in SAMPLE.questions}


class ExplodingLayer:
    async def quiz(self, quiz_id):
        raise RuntimeError("fallback itself failed")


async def ready_session(layer, quiz_id=1, user_id=None) -> QuizSession:
    session = QuizSession(quiz_id, user_id=user_id)
    await session.load(layer)
    assert session.state is SessionState.READY
    return session


def to_last(session: QuizSession) -> QuizSession:
    while not session.is_last_question:
        session.next()
    return session


# ------------------------------------------------------------
# Scoring
# ------------------------------------------------------------
def test_all_correct_scores_100():
    assert score_answers(SAMPLE.questions, CORRECT) == (5, 5, 100.0)


def test_all_wrong_scores_zero():
    assert score_answers(SAMPLE.questions, WRONG) == (0, 5, 0.0)


def test_empty_answers_score_zero():
    assert score_answers(SAMPLE.questions, {}) == (0, 5, 0.0)


def test_score_matches_formula_for_every_assignment():
    questions = SAMPLE.questions[:3]
    choices = [None, "a", "b", "c", "d"]
    for combo in itertools.product(choices, repeat=len(questions)):
        answers = {q.id: label for q, label in zip(questions, combo) if label is not None}
        correct = sum(1 for q in questions if answers.get(q.id) == q.correct_answer)
        assert score_answers(questions, answers) == (correct, 3, 100 * correct / 3)


def test_score_is_not_rounded():
    _, _, score = score_answers(SAMPLE.questions[:3], {1: "b"})
    assert score == pytest.approx(33.333333333)
    assert score != 33.0


# ------------------------------------------------------------
# Loading
# ------------------------------------------------------------
@pytest.mark.asyncio
async def test_load_moves_to_ready_at_first_question(live_layer):
    session = await ready_session(live_layer, quiz_id=7)
    assert session.current_index == 0
    assert session.total_questions == 4
    assert session.current_question.id == 11


@pytest.mark.asyncio
async def test_load_uses_fallback_when_backend_is_down(down_layer):
    session = await ready_session(down_layer)
    assert session.quiz.title == "Machine Learning Fundamentals"
    assert session.source.value == "fallback"


@pytest.mark.asyncio
async def test_load_failure_is_errored():
    session = QuizSession(1)
    await session.load(ExplodingLayer())
    assert session.state is SessionState.ERRORED
    assert isinstance(session.error, RuntimeError)
    with pytest.raises(SessionStateError):
        session.next()


# ------------------------------------------------------------
# Answers and navigation
# ------------------------------------------------------------
@pytest.mark.asyncio
async def test_select_answer_overwrites(down_layer):
    session = await ready_session(down_layer)
    session.select_answer(1, "a")
    session.select_answer(1, "b")
    assert session.answers == {1: "b"}


@pytest.mark.asyncio
async def test_select_answer_rejects_bad_labels(down_layer):
    session = await ready_session(down_layer)
    for label in ("e", "A", "", "ab"):
        with pytest.raises(InvalidAnswer):
            session.select_answer(1, label)
    with pytest.raises(InvalidAnswer):
        session.select_answer(99, "a")
    assert session.answers == {}


@pytest.mark.asyncio
async def test_previous_at_start_is_a_noop(down_layer):
    session = await ready_session(down_layer)
    before = session.view()
    session.previous()
    assert session.view() == before


@pytest.mark.asyncio
async def test_next_stops_at_last_question(down_layer):
    session = await ready_session(down_layer)
    for _ in range(10):
        session.next()
    assert session.current_index == 4
    assert session.is_last_question
    assert session.state is SessionState.READY
    session.previous()
    assert session.current_index == 3


@pytest.mark.asyncio
async def test_navigation_does_not_require_an_answer(down_layer):
    session = await ready_session(down_layer)
    session.next()
    assert session.current_index == 1
    assert session.answers == {}


@pytest.mark.asyncio
async def test_progress_follows_cursor(down_layer):
    session = await ready_session(down_layer)
    assert session.progress == 20.0
    session.next()
    assert session.progress == 40.0


@pytest.mark.asyncio
async def test_view_hides_answer_key(down_layer):
    session = await ready_session(down_layer)
    view = session.view()
    assert "correct_answer" not in view.question
    assert view.question["option_b"].startswith("Building systems")


# ------------------------------------------------------------
# Submission
# ------------------------------------------------------------
@pytest.mark.asyncio
async def test_submit_scores_and_stores_once(down_layer, store):
    session = await ready_session(down_layer)
    for qid, label in CORRECT.items():
        session.select_answer(qid, label)
    session.select_answer(5, "a")
    for _ in range(4):
        session.next()

    result = await session.submit(store)

    assert session.state is SessionState.SUBMITTED
    assert result.score == 80.0
    assert result.correct_answers == 4
    assert result.total_questions == 5
    assert result.quiz_title == "Machine Learning Fundamentals"
    assert session.score == 80.0
    assert store.read_all() == [result]


@pytest.mark.asyncio
async def test_submit_is_one_way(down_layer, store):
    session = await ready_session(down_layer)
    to_last(session)
    await session.submit(store)
    with pytest.raises(SessionStateError):
        await session.submit(store)
    with pytest.raises(SessionStateError):
        session.select_answer(1, "a")
    assert len(store.read_all()) == 1


@pytest.mark.asyncio
async def test_submit_without_identity_does_not_publish(live_layer, fake_backend, store):
    publisher = LeaderboardPublisher(live_layer)
    session = await ready_session(live_layer, quiz_id=7)
    to_last(session)

    await session.submit(store, publisher)
    await publisher.drain()

    assert fake_backend.calls("POST", "/api/saveResult") == []


@pytest.mark.asyncio
async def test_submit_with_identity_publishes(live_layer, fake_backend, store):
    outcomes = []
    publisher = LeaderboardPublisher(live_layer)
    session = await ready_session(live_layer, quiz_id=7, user_id=3)
    session.select_answer(11, "b")
    session.select_answer(13, "d")
    to_last(session)

    await session.submit(store, publisher, outcomes.append)
    await publisher.drain()

    assert fake_backend.json_calls("POST", "/api/saveResult") == [
        {"userId": 3, "quizId": 7, "score": 2, "totalQuestions": 4, "percentage": 50.0}
    ]
    assert [o.ok for o in outcomes] == [True]


@pytest.mark.asyncio
async def test_failed_publish_leaves_session_submitted(live_layer, fake_backend, store):
    fake_backend.post("/api/saveResult", {"error": "down"}, status=503)
    outcomes = []
    publisher = LeaderboardPublisher(live_layer)
    session = await ready_session(live_layer, quiz_id=7, user_id=3)
    to_last(session)

    result = await session.submit(store, publisher, outcomes.append)
    await publisher.drain()

    assert session.state is SessionState.SUBMITTED
    assert store.read_all() == [result]
    assert [o.ok for o in outcomes] == [False]


@pytest.mark.asyncio
async def test_submit_before_last_question_is_refused(down_layer, store):
    session = await ready_session(down_layer)
    session.select_answer(1, "b")

    with pytest.raises(SessionStateError):
        await session.submit(store)
    session.next()
    with pytest.raises(SessionStateError):
        await session.submit(store)

    assert session.state is SessionState.READY
    assert session.result is None
    assert store.read_all() == []


@pytest.mark.asyncio
async def test_submit_does_not_wait_for_leaderboard_publish(store):
    release = asyncio.Event()
    saved = []

    async def slow_backend(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/saveResult":
            await release.wait()
            saved.append(request)
            return httpx.Response(200, json={"success": True})
        return httpx.Response(503, json={"error": "unavailable"})

    layer = ResilientQueryLayer(BackendGateway(BACKEND_URL, transport=httpx.MockTransport(slow_backend)))
    publisher = LeaderboardPublisher(layer)
    session = to_last(await ready_session(layer, user_id=3))

    result = await asyncio.wait_for(session.submit(store, publisher), 1.0)

    assert session.state is SessionState.SUBMITTED
    assert store.read_all() == [result]
    assert publisher.pending == 1
    assert saved == []

    release.set()
    await publisher.drain()
    assert publisher.pending == 0
    assert len(saved) == 1
