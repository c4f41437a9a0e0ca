# backend/quiz_portal/core/fallback.py
"""
Static substitute data served when the backend cannot be reached.

Only reads have a fallback. Every call builds fresh objects, so callers may
mutate what they get back without affecting later calls.
"""

from datetime import datetime, timezone
from typing import List

from .schemas import LeaderboardEntry, Question, Quiz, QuizSummary

SAMPLE_QUIZ_ID = 1

FALLBACK_CATEGORIES = ("General", "Machine Learning", "Data Science", "Programming")

_SUMMARIES = (
    (1, "Machine Learning Fundamentals", "Test your knowledge of ML basics and concepts",
     datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)),
    (2, "Data Science Basics", "Fundamental concepts in data science and analytics",
     datetime(2024, 1, 10, 14, 30, tzinfo=timezone.utc)),
)

_SAMPLE_QUESTIONS = (
    (
        "What is the primary focus of Machine Learning (ML)?",
        "Programming computers with explicit instructions",
        "Building systems that learn from data and improve performance over time",
        "Developing hardware components for computer systems",
        "Creating static models for data storage",
        "b",
    ),
    (
        "Which of the following is NOT an application powered by Machine Learning?",
        "Spam detection in emails",
        "Product recommendations on e-commerce platforms",
        "Manually writing code for a specific task",
        "Fraud detection in banking",
        "c",
    ),
    (
        "What type of Machine Learning involves training models on labeled data?",
        "Unsupervised learning",
        "Reinforcement learning",
        "Supervised learning",
        "Deep learning",
        "c",
    ),
    (
        "What is a key challenge associated with Machine Learning?",
        "The lack of available programming languages",
        "The need for high-quality data and computational resources",
        "The simplicity of the algorithms involved",
        "The lack of potential applications",
        "b",
    ),
    (
        "What allows systems to learn through trial and error by receiving rewards "
        "or penalties for their actions?",
        "Supervised Learning",
        "Unsupervised Learning",
        "Reinforcement Learning",
        "Deep Learning",
        "c",
    ),
)


class FallbackCatalog:
    """Pure provider of offline data, one method per backend read."""

    @staticmethod
    def categories() -> List[str]:
        return list(FALLBACK_CATEGORIES)

    @staticmethod
    def quiz_summaries() -> List[QuizSummary]:
        return [
            QuizSummary(id=qid, title=title, description=desc, created_at=created)
            for qid, title, desc, created in _SUMMARIES
        ]

    @staticmethod
    def quiz(quiz_id: int) -> Quiz:
        """Synthetic five-question quiz echoing the requested id."""
        title = "Machine Learning Fundamentals" if quiz_id == SAMPLE_QUIZ_ID else "Data Science Quiz"
        questions = [
            Question(
                id=i,
                question=text,
                option_a=a,
                option_b=b,
                option_c=c,
                option_d=d,
                correct_answer=answer,
            )
            for i, (text, a, b, c, d, answer) in enumerate(_SAMPLE_QUESTIONS, start=1)
        ]
        return Quiz(
            id=quiz_id,
            title=title,
            description="Test your knowledge with this comprehensive quiz",
            questions=questions,
        )

    @staticmethod
    def leaderboard() -> List[LeaderboardEntry]:
        return []
