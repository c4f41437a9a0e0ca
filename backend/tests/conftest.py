import json
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from quiz_portal.app import create_app
from quiz_portal.core import BackendGateway, LocalStorage, ResilientQueryLayer, ResultStore
from quiz_portal.core.config import Settings

BACKEND_URL = "http://backend.test"

QUIZ_7 = {
    "id": 7,
    "title": "Python Basics",
    "description": "Loops and lists",
    "created_at": "2024-02-01T09:00:00Z",
    "questions": [
        {
            "id": 11,
            "question": "Which keyword defines a function?",
            "option_a": "func",
            "option_b": "def",
            "option_c": "lambda",
            "option_d": "fn",
            "correct_answer": "b",
        },
        {
            "id": 12,
            "question": "What does len([1, 2, 3]) return?",
            "option_a": "2",
            "option_b": "3",
            "option_c": "4",
            "option_d": "an error",
            "correct_answer": "b",
        },
        {
            "id": 13,
            "question": "Which type is immutable?",
            "option_a": "list",
            "option_b": "dict",
            "option_c": "set",
            "option_d": "tuple",
            "correct_answer": "d",
        },
        {
            "id": 14,
            "question": "What is 7 // 2?",
            "option_a": "3",
            "option_b": "3.5",
            "option_c": "4",
            "option_d": "1",
            "correct_answer": "a",
        },
    ],
}


class FakeBackend:
    """Routes httpx requests to canned responses and records every call."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.get("/api/categories", ["General", "Python"])
        self.get("/api/quizzes", [{k: v for k, v in QUIZ_7.items() if k != "questions"}])
        self.get("/api/quiz/7", QUIZ_7)
        self.get("/api/leaderboard", [])
        self.get("/api/leaderboard/overall", [])
        self.post("/api/saveResult", {"success": True})

    def get(self, path: str, body: Any, status: int = 200):
        self.routes[("GET", path)] = lambda request: httpx.Response(status, json=body)

    def post(self, path: str, body: Any, status: int = 200):
        self.routes[("POST", path)] = lambda request: httpx.Response(status, json=body)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def json_calls(self, method: str, path: str) -> List[Any]:
        return [json.loads(r.content) for r in self.calls(method, path)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)


class DownBackend:
    """Every request fails at the transport level."""

    def __init__(self):
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def down_backend():
    return DownBackend()


@pytest.fixture
def settings(tmp_path):
    return Settings(backend_url=BACKEND_URL, data_dir=tmp_path, log_level="DEBUG")


@pytest.fixture
def store(tmp_path):
    return ResultStore(LocalStorage(tmp_path / "storage.json"))


@pytest.fixture
def live_layer(fake_backend):
    return ResilientQueryLayer(BackendGateway(BACKEND_URL, transport=httpx.MockTransport(fake_backend)))


@pytest.fixture
def down_layer(down_backend):
    return ResilientQueryLayer(BackendGateway(BACKEND_URL, transport=httpx.MockTransport(down_backend)))


@pytest.fixture
def live_client(settings, fake_backend):
    app = create_app(settings, transport=httpx.MockTransport(fake_backend))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def down_client(settings, down_backend):
    app = create_app(settings, transport=httpx.MockTransport(down_backend))
    with TestClient(app) as client:
        yield client
