# backend/quiz_portal/core/__init__.py
"""
Core package for the quiz portal proxy.
Exposes the gateway, the fallback policy, sessions and local storage.
"""

from .errors import (
    BackendUnavailable,
    InvalidAnswer,
    NotFound,
    SessionStateError,
    ValidationFailed,
    WriteFailed,
)
from .fallback import FallbackCatalog
from .gateway import BackendGateway, BackendReply
from .leaderboard import LeaderboardAggregator, Submission
from .resilient import LeaderboardPublisher, PublishOutcome, QueryResult, ResilientQueryLayer, Source
from .result_store import IdentityStore, LocalStorage, ResultStore
from .session import QuizSession, SessionRegistry, SessionState, score_answers

__all__ = [
    "BackendGateway",
    "BackendReply",
    "BackendUnavailable",
    "FallbackCatalog",
    "IdentityStore",
    "InvalidAnswer",
    "LeaderboardAggregator",
    "LeaderboardPublisher",
    "LocalStorage",
    "NotFound",
    "PublishOutcome",
    "QueryResult",
    "QuizSession",
    "ResilientQueryLayer",
    "ResultStore",
    "SessionRegistry",
    "SessionState",
    "SessionStateError",
    "Source",
    "Submission",
    "ValidationFailed",
    "WriteFailed",
    "score_answers",
]
