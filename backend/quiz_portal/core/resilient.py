# backend/quiz_portal/core/resilient.py
"""
Fallback policy around the backend gateway.

Reads never raise on BackendUnavailable: they log the cause and return the
matching FallbackCatalog value, tagged so callers can still tell live data,
fallback data and a live-but-empty answer apart. Writes have no fallback:
any failure becomes WriteFailed with the operation's own message.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Set, TypeVar

from .errors import BackendUnavailable, WriteFailed
from .fallback import FallbackCatalog
from .gateway import BackendGateway, BackendReply
from .leaderboard import LeaderboardAggregator
from .schemas import LeaderboardEntry, LeaderboardSubmission, Quiz, QuizSummary

logger = logging.getLogger("quiz.resilient")

T = TypeVar("T")


class Source(str, Enum):
    LIVE = "live"
    FALLBACK = "fallback"
    EMPTY = "empty"                # live answer with nothing in it


@dataclass
class QueryResult(Generic[T]):
    data: T
    source: Source

    @property
    def is_fallback(self) -> bool:
        return self.source is Source.FALLBACK


class ResilientQueryLayer:
    def __init__(self, gateway: BackendGateway, catalog: Optional[FallbackCatalog] = None):
        self.gateway = gateway
        self.catalog = catalog or FallbackCatalog()

    async def _read(self, operation: str, call: Awaitable[T], fallback: Callable[[], T]) -> QueryResult[T]:
        try:
            data = await call
        except BackendUnavailable as e:
            logger.warning(f"{operation} falling back to offline data: {e.reason}")
            return QueryResult(fallback(), Source.FALLBACK)
        if isinstance(data, list) and not data:
            return QueryResult(data, Source.EMPTY)
        return QueryResult(data, Source.LIVE)

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------
    async def categories(self) -> QueryResult[List[str]]:
        return await self._read("get_categories", self.gateway.get_categories(), self.catalog.categories)

    async def quizzes(self) -> QueryResult[List[QuizSummary]]:
        return await self._read("get_quiz_list", self.gateway.get_quiz_list(), self.catalog.quiz_summaries)

    async def quiz(self, quiz_id: int) -> QueryResult[Quiz]:
        return await self._read(
            "get_quiz", self.gateway.get_quiz(quiz_id), lambda: self.catalog.quiz(quiz_id)
        )

    async def leaderboard(self, category: Optional[str] = None) -> QueryResult[List[LeaderboardEntry]]:
        result = await self._read(
            "get_leaderboard", self.gateway.get_leaderboard(category), self.catalog.leaderboard
        )
        result.data = LeaderboardAggregator.rank(result.data)
        return result

    async def overall_leaderboard(self) -> QueryResult[List[LeaderboardEntry]]:
        result = await self._read(
            "get_overall_leaderboard", self.gateway.get_overall_leaderboard(), self.catalog.leaderboard
        )
        result.data = LeaderboardAggregator.rank(result.data)
        return result

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------
    async def _write(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except BackendUnavailable as e:
            logger.error(f"{operation} failed: {e.reason}")
            raise WriteFailed(operation, e.reason) from e

    async def submit_result(self, submission: LeaderboardSubmission) -> Any:
        return await self._write("submit_result", self.gateway.submit_result(submission))

    async def submit_document(
        self, filename: str, content: bytes, title: str, description: str = "",
        content_type: str = "application/pdf",
    ) -> Dict[str, Any]:
        return await self._write(
            "submit_document",
            self.gateway.submit_document(filename, content, title, description, content_type),
        )

    async def login(self, credentials: Dict[str, Any]) -> BackendReply:
        return await self._write("login", self.gateway.login(credentials))

    async def register(self, registration: Dict[str, Any]) -> BackendReply:
        return await self._write("register", self.gateway.register(registration))


# ------------------------------------------------------------
# Fire-and-forget leaderboard publishing
# ------------------------------------------------------------
@dataclass
class PublishOutcome:
    submission: LeaderboardSubmission
    ok: bool
    error: Optional[BaseException] = None


PublishCallback = Callable[[PublishOutcome], None]


class LeaderboardPublisher:
    """
    Pushes a finished attempt to the leaderboard in a background task.

    The task never raises: failures are logged and reported to the optional
    callback, and nothing is retried.
    """

    def __init__(self, layer: ResilientQueryLayer):
        self.layer = layer
        self._pending: Set[asyncio.Task] = set()

    def publish(
        self, submission: LeaderboardSubmission, on_done: Optional[PublishCallback] = None
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._run(submission, on_done))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, submission: LeaderboardSubmission, on_done: Optional[PublishCallback]) -> PublishOutcome:
        try:
            await self.layer.submit_result(submission)
        except Exception as e:
            logger.error(f"Failed to save result to leaderboard (quiz {submission.quiz_id}): {e}")
            outcome = PublishOutcome(submission, ok=False, error=e)
        else:
            logger.info(f"Result saved to leaderboard (quiz {submission.quiz_id})")
            outcome = PublishOutcome(submission, ok=True)

        if on_done is not None:
            try:
                on_done(outcome)
            except Exception:
                logger.exception("Publish callback raised")
        return outcome

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every publish still in flight (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
