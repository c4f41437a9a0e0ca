# backend/quiz_portal/core/leaderboard.py
"""
Ranking contract for leaderboard tables.

The backend owns the raw submissions and does the aggregation; this module
states what its output must look like so the proxy and the client agree:

- overall view: one row per username over every category
- category view: the same aggregation over rows whose category matches
  exactly (case-sensitive)
- order: average_score desc, best_score desc, username asc
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .schemas import LeaderboardEntry

OVERALL = "overall"


@dataclass(frozen=True)
class Submission:
    """One raw leaderboard row as stored by the backend."""

    username: str
    quiz_id: int
    category: str
    score: float                   # percentage, 0-100
    completed_at: Optional[datetime] = None


def _as_utc(moment: datetime) -> datetime:
    # naive timestamps are taken to be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def ranking_key(entry: LeaderboardEntry):
    return (-entry.average_score, -entry.best_score, entry.username)


class LeaderboardAggregator:
    @staticmethod
    def rank(entries: Iterable[LeaderboardEntry]) -> List[LeaderboardEntry]:
        return sorted(entries, key=ranking_key)

    @classmethod
    def overall(cls, submissions: Iterable[Submission]) -> List[LeaderboardEntry]:
        return cls._aggregate(submissions, OVERALL)

    @classmethod
    def by_category(cls, submissions: Iterable[Submission], category: str) -> List[LeaderboardEntry]:
        return cls._aggregate((s for s in submissions if s.category == category), category)

    @classmethod
    def _aggregate(cls, submissions: Iterable[Submission], label: str) -> List[LeaderboardEntry]:
        per_user: Dict[str, List[Submission]] = defaultdict(list)
        for s in submissions:
            per_user[s.username].append(s)

        entries = []
        for username, rows in per_user.items():
            scores = [r.score for r in rows]
            dates = [_as_utc(r.completed_at) for r in rows if r.completed_at is not None]
            entries.append(
                LeaderboardEntry(
                    username=username,
                    category=label,
                    average_score=sum(scores) / len(scores),
                    total_quizzes=len(scores),
                    best_score=max(scores),
                    latest_quiz_date=max(dates).isoformat() if dates else None,
                )
            )
        return cls.rank(entries)
