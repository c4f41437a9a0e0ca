# backend/quiz_portal/core/gateway.py
"""
Typed client for the external quiz/leaderboard backend.

Every call is a single round trip. Transport errors, non-2xx statuses and
bodies that do not match the expected shape all become BackendUnavailable
carrying the operation name; nothing here retries.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .errors import BackendUnavailable, NotFound
from .schemas import LeaderboardEntry, LeaderboardSubmission, Quiz, QuizSummary

logger = logging.getLogger("quiz.gateway")

_CATEGORIES = TypeAdapter(List[str])
_SUMMARIES = TypeAdapter(List[QuizSummary])
_ENTRIES = TypeAdapter(List[LeaderboardEntry])


@dataclass
class BackendReply:
    """Status and JSON body of a backend answer, forwarded as-is."""

    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class BackendGateway:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BackendGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------
    async def _send(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug(f"{operation}: {method} {self.base_url}{path}")
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BackendUnavailable(operation, f"transport error: {e!r}") from e

    @staticmethod
    def _json(operation: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BackendUnavailable(
                operation, "malformed response body", response.status_code
            ) from e

    def _checked_json(self, operation: str, response: httpx.Response) -> Any:
        if not response.is_success:
            raise BackendUnavailable(
                operation,
                f"backend responded with {response.status_code}: {response.text[:200]}",
                response.status_code,
            )
        return self._json(operation, response)

    @staticmethod
    def _validate(operation: str, adapter_or_model: Any, data: Any) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(data)
            return adapter_or_model.model_validate(data)
        except ValidationError as e:
            raise BackendUnavailable(operation, f"unexpected response shape: {e.error_count()} error(s)") from e

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    async def get_categories(self) -> List[str]:
        op = "get_categories"
        response = await self._send(op, "GET", "/api/categories")
        return self._validate(op, _CATEGORIES, self._checked_json(op, response))

    async def get_quiz_list(self) -> List[QuizSummary]:
        op = "get_quiz_list"
        response = await self._send(op, "GET", "/api/quizzes")
        return self._validate(op, _SUMMARIES, self._checked_json(op, response))

    async def get_quiz(self, quiz_id: int) -> Quiz:
        op = "get_quiz"
        response = await self._send(op, "GET", f"/api/quiz/{quiz_id}")
        if response.status_code == 404:
            raise NotFound(op, f"quiz {quiz_id} not found", 404)
        return self._validate(op, Quiz, self._checked_json(op, response))

    async def get_leaderboard(self, category: Optional[str] = None) -> List[LeaderboardEntry]:
        op = "get_leaderboard"
        params = {"category": category} if category else None
        response = await self._send(op, "GET", "/api/leaderboard", params=params)
        return self._validate(op, _ENTRIES, self._checked_json(op, response))

    async def get_overall_leaderboard(self) -> List[LeaderboardEntry]:
        op = "get_overall_leaderboard"
        response = await self._send(op, "GET", "/api/leaderboard/overall")
        return self._validate(op, _ENTRIES, self._checked_json(op, response))

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------
    async def submit_result(self, submission: LeaderboardSubmission) -> Any:
        op = "submit_result"
        response = await self._send(
            op, "POST", "/api/saveResult", json=submission.model_dump(by_alias=True)
        )
        return self._checked_json(op, response)

    async def submit_document(
        self,
        filename: str,
        content: bytes,
        title: str,
        description: str = "",
        content_type: str = "application/pdf",
    ) -> Dict[str, Any]:
        op = "submit_document"
        response = await self._send(
            op,
            "POST",
            "/api/uploadPdf",
            data={"title": title, "description": description},
            files={"pdf": (filename, content, content_type)},
        )
        body = self._checked_json(op, response)
        if not isinstance(body, dict):
            raise BackendUnavailable(op, "unexpected response shape: expected an object")
        return body

    async def login(self, credentials: Dict[str, Any]) -> BackendReply:
        return await self._forward("login", "/api/login", credentials)

    async def register(self, registration: Dict[str, Any]) -> BackendReply:
        return await self._forward("register", "/api/register", registration)

    async def _forward(self, operation: str, path: str, payload: Dict[str, Any]) -> BackendReply:
        # auth replies keep their status; only transport/body failures raise
        response = await self._send(operation, "POST", path, json=payload)
        return BackendReply(response.status_code, self._json(operation, response))
