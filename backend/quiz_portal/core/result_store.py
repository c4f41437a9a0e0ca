# backend/quiz_portal/core/result_store.py
"""
Device-local persistence: the completed-attempt log and the identity slot.

Both live in one JSON object file keyed like browser local storage
("quizResults", "userId"). Every read-modify-write holds a lock shared by
all handles on the same file and lands through an atomic replace, so
`append` never loses entries and `read_all` never sees a half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .schemas import QuizResult, ResultStats

logger = logging.getLogger("quiz.store")

RESULTS_KEY = "quizResults"
IDENTITY_KEY = "userId"

_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(key, threading.RLock())


class LocalStorage:
    """Tiny JSON key/value file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    # ---------------------------------------------------------
    # File access (callers hold the lock)
    # ---------------------------------------------------------
    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    # ---------------------------------------------------------
    # Public API
    # ---------------------------------------------------------
    def get_item(self, key: str) -> Any:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """Atomically replace the value under `key` with fn(old value)."""
        with self._lock:
            data = self._load()
            data[key] = fn(data.get(key))
            self._dump(data)
            return data[key]


class ResultStore:
    """Append-only log of completed quiz attempts."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def append(self, result: QuizResult) -> None:
        record = result.model_dump(mode="json", by_alias=True)

        def _push(existing):
            log = existing if isinstance(existing, list) else []
            log.append(record)
            return log

        self.storage.update(RESULTS_KEY, _push)
        logger.info(f"Stored result for quiz {result.quiz_id} ({result.score:.1f}%)")

    def read_all(self) -> List[QuizResult]:
        """Every stored result in insertion order; broken records are skipped."""
        raw = self.storage.get_item(RESULTS_KEY)
        if not isinstance(raw, list):
            return []

        results = []
        for item in raw:
            try:
                results.append(QuizResult.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed stored result")
                continue
        return results

    def read_recent(self) -> List[QuizResult]:
        return sorted(self.read_all(), key=lambda r: r.completed_at, reverse=True)

    def clear_all(self) -> None:
        self.storage.remove_item(RESULTS_KEY)
        logger.info("Cleared local results")

    def stats(self, results: Optional[List[QuizResult]] = None) -> ResultStats:
        if results is None:
            results = self.read_all()
        if not results:
            return ResultStats(total_attempts=0)
        scores = [r.score for r in results]
        return ResultStats(
            total_attempts=len(scores),
            average_score=sum(scores) / len(scores),
            best_score=max(scores),
        )


class IdentityStore:
    """The single identity token used to publish leaderboard results."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    def get(self) -> Optional[int]:
        value = self.storage.get_item(IDENTITY_KEY)
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed identity value {value!r}")
            return None

    def set(self, user_id: int) -> None:
        self.storage.set_item(IDENTITY_KEY, str(user_id))

    def clear(self) -> None:
        self.storage.remove_item(IDENTITY_KEY)
